from gtd.app.main import main

main()
