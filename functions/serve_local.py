#!/usr/bin/env python3
"""Local development server for Gracemark Python functions.

Mimics the Firebase Functions emulator endpoints without the emulator.

Usage:
    cd functions
    source venv/bin/activate
    python serve_local.py

This will start a Flask server on port 5002 that handles:
- GET  /api/eor-validations/<country_code> -> eor_validations function
- POST /gracemark-dev/us-central1/enhance_quote
- POST /gracemark-dev/us-central1/categorize_costs
- POST /gracemark-dev/us-central1/reconcile_providers
- POST /gracemark-dev/us-central1/acid_test
- POST /gracemark-dev/us-central1/save_quote
- POST /gracemark-dev/us-central1/get_quote
"""

import os

# Set environment for local development
os.environ.setdefault('FUNCTIONS_EMULATOR', 'true')
os.environ.setdefault('USE_FIREBASE_EMULATORS', 'true')
os.environ.setdefault('GCLOUD_PROJECT', 'gracemark-dev')
os.environ.setdefault('FIRESTORE_EMULATOR_HOST', '127.0.0.1:8081')

from flask import Flask, request, jsonify
from flask_cors import CORS

# Import the main module after setting env vars
from main import (
    eor_validations,
    enhance_quote,
    categorize_costs,
    reconcile_providers,
    acid_test,
    save_quote,
    get_quote,
)

app = Flask(__name__)
CORS(app)

FUNCTION_PREFIX = '/gracemark-dev/us-central1'


class MockRequest:
    """Mock Firebase request object to wrap Flask request."""

    def __init__(self, flask_request, path=None):
        self._request = flask_request
        self._json_data = None
        self.method = flask_request.method
        self.headers = dict(flask_request.headers)
        self.args = flask_request.args
        self.path = path if path is not None else flask_request.path

    def get_json(self, force=False):
        if self._json_data is None:
            self._json_data = self._request.get_json(force=force) or {}
        return self._json_data


def wrap_firebase_function(firebase_fn, path=None):
    """Wrap a Firebase function to work with Flask."""
    def wrapper():
        mock_req = MockRequest(request, path=path)
        response = firebase_fn(mock_req)
        return response.get_data(), response.status_code, dict(response.headers)
    return wrapper


@app.route('/api/eor-validations/<country_code>', methods=['GET', 'OPTIONS'])
def handle_eor_validations(country_code):
    return wrap_firebase_function(eor_validations, path=f'/{country_code}')()


@app.route(f'{FUNCTION_PREFIX}/enhance_quote', methods=['POST', 'OPTIONS'])
def handle_enhance_quote():
    return wrap_firebase_function(enhance_quote)()


@app.route(f'{FUNCTION_PREFIX}/categorize_costs', methods=['POST', 'OPTIONS'])
def handle_categorize_costs():
    return wrap_firebase_function(categorize_costs)()


@app.route(f'{FUNCTION_PREFIX}/reconcile_providers', methods=['POST', 'OPTIONS'])
def handle_reconcile_providers():
    return wrap_firebase_function(reconcile_providers)()


@app.route(f'{FUNCTION_PREFIX}/acid_test', methods=['POST', 'OPTIONS'])
def handle_acid_test():
    return wrap_firebase_function(acid_test)()


@app.route(f'{FUNCTION_PREFIX}/save_quote', methods=['POST', 'OPTIONS'])
def handle_save_quote():
    return wrap_firebase_function(save_quote)()


@app.route(f'{FUNCTION_PREFIX}/get_quote', methods=['POST', 'OPTIONS'])
def handle_get_quote():
    return wrap_firebase_function(get_quote)()


# Health check
@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'service': 'gracemark-python-functions'})


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5002))
    print(f"""
╔════════════════════════════════════════════════════════════════╗
║  Gracemark Python Functions - Local Development Server         ║
╠════════════════════════════════════════════════════════════════╣
║                                                                ║
║  Server running on: http://127.0.0.1:{port}                     ║
║                                                                ║
║  Endpoints:                                                    ║
║  • GET  /api/eor-validations/<country_code>                    ║
║  • POST {FUNCTION_PREFIX}/enhance_quote              ║
║  • POST {FUNCTION_PREFIX}/categorize_costs           ║
║  • POST {FUNCTION_PREFIX}/reconcile_providers        ║
║  • POST {FUNCTION_PREFIX}/acid_test                  ║
║  • POST {FUNCTION_PREFIX}/save_quote                 ║
║  • POST {FUNCTION_PREFIX}/get_quote                  ║
║                                                                ║
╚════════════════════════════════════════════════════════════════╝
""")
    app.run(host='127.0.0.1', port=port, debug=True, threaded=True)
