from comparebuy.cli import main

main()
