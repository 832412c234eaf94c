"""Application entrypoint"""
import os
from dotenv import load_dotenv

# Load .env
load_dotenv()

from chat_backend import create_app

app = create_app(os.environ.get('FLASK_CONFIG') or 'default')

if __name__ == '__main__':
    app.run(debug=True, port=int(os.environ.get('PORT', '3001')))
