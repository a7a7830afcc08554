# extensions.py
# Flask extension singletons, bound to the app in create_app()
import logging

from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_mail import Mail
from flask_socketio import SocketIO

db = SQLAlchemy()
login_manager = LoginManager()
mail = Mail()
socketio = SocketIO(logger=False, engineio_logger=False)

# Keep the socket layer quiet unless something goes wrong
logging.getLogger("engineio").setLevel(logging.WARNING)
logging.getLogger("socketio").setLevel(logging.WARNING)
