"""
WSGI entry point

    gunicorn app:app
    flask --app app run
"""
import os

from docboard import create_app

app = create_app(os.getenv("FLASK_ENV"))

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=app.debug)
