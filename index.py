import uvicorn

from imgserve.app import create_app
from imgserve.config import Settings

settings = Settings()
app = create_app(settings)


def main() -> None:
  uvicorn.run(app, host=settings.address, port=settings.port, log_config=None)


if __name__ == '__main__':
  main()
