# shopsync/main.py
import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from api.app import create_app
from core.settings import API


app = create_app()


if __name__ == "__main__":
    app.run(host=API.host, port=API.port)
