"""Central .env loader. Entry points import this before reading configuration."""
from pathlib import Path
from dotenv import load_dotenv

# Load the .env next to this file without overriding exported variables
_env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(_env_path, override=False)
