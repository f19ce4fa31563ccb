from flask import Flask
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate

import logging

db = SQLAlchemy()
bcrypt = Bcrypt()
jwt = JWTManager()
migrate = Migrate()

def create_app(config_object=None):
    app = Flask(__name__)
    CORS(app)

    app.config.from_object(config_object or 'haulbook.config.Config')
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    db.init_app(app)
    bcrypt.init_app(app)
    jwt.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        from .routes import main
        from .auth import auth
        from . import models
        app.register_blueprint(main)
        app.register_blueprint(auth, url_prefix='/auth')
        db.create_all()

    return app
