from cronrunner.cli import main

raise SystemExit(main())
