from conch.cmdline import main

main()
