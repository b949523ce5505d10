from kviator.cli import main

main()
