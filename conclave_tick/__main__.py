from .tick import main

raise SystemExit(main())
