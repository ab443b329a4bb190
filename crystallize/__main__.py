from crystallize.main import main

main()
