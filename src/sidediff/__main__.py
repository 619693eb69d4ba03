from sidediff.entry_points import main

main()
