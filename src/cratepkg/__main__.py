from cratepkg.cli import main

raise SystemExit(main())
