from udiskr.main import main

main()
