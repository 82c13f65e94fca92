from wxpub.app.cli import main

raise SystemExit(main())
