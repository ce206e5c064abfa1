from routekit.app import create_app
from routekit.config import Settings, configure_logging

settings = Settings.from_env()
configure_logging(settings.log_level)

app = create_app(settings)
