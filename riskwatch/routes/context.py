from flask import current_app

EXTENSION_KEY = "riskwatch"


def get_orchestrator():
    return current_app.extensions[EXTENSION_KEY]
