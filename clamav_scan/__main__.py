from clamav_scan.cli import main

main()
