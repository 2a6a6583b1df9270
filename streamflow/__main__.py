from streamflow.main import main

raise SystemExit(main())
