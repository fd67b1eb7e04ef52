"""
Entry point for running the Classroom API
Run: python run_server.py  (host/port from SERVER_HOST / SERVER_PORT or config.yaml)
"""
import sys
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

if __name__ == "__main__":
    import uvicorn
    from utils.config_loader import get_settings

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info"
    )
