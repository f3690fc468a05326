from gesture_lock.cli import main

main()
