"""Run the pipeline once: python -m league_history"""

from league_history.pipeline.runner import main

raise SystemExit(main())
