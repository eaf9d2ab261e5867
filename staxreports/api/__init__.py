from flask import Blueprint

bp = Blueprint('api', __name__)

# Import routes at the bottom to avoid circular imports
from staxreports.api import routes  # noqa: E402,F401
