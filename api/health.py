from flask import Blueprint, current_app

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            environment:
              type: string
              example: dev
    """
    from . import __version__

    return {
        "status": "ok",
        "version": __version__,
        "environment": current_app.config.get("APP_ENV", "dev"),
    }, 200
