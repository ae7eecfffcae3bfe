import os

from rentflow import create_app
from rentflow.config import DevConfig, ProdConfig


config = ProdConfig if os.getenv("FLASK_ENV", "").lower() == "production" else DevConfig
app = create_app(config)

if __name__ == "__main__":
    app.run()
