from chimera.server import main

main()
