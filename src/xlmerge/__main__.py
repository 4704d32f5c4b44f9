from xlmerge.cli import main

main()
