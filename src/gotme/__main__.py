from gotme import main

main()
