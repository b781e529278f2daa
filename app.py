"""Entry point for the Stockline API.

Serves the station API for scanners and operator terminals without installing
the package: run `python app.py`, or `uvicorn app:app` behind a process
manager. Postgres and image settings come from STORE_* variables (or .env),
the debounce window and history depth from SCAN_*, and LOG_LEVEL sets the
structlog level. Create the tables first with `stockline init-db`.
"""

import sys
from pathlib import Path

# Add src directory to Python path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

# Import and expose the FastAPI app
from stockline.api.main import app  # noqa: E402

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
