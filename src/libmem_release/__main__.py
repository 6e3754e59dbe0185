from libmem_release.cli import main

raise SystemExit(main())
