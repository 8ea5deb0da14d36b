"""
Flask service reporting the container image size and layer count of a Helm chart repository.

The service clones a chart repository, resolves the image declared by its first
usable chart under charts/, makes sure the image is present in the local container
runtime and reports its size and number of layers.

Key features:
- HTML form and image details page
- Configurable logging with file rotation
- JSON configuration file support
- Explicit timeouts for git and container runtime commands
- Retention policy for cloned repositories

Author:
    - Name: Anubhav Patrick
    - Email: anubhav.patrick@giindia.com
    - Date: 2025-06-12
"""

from flask import Flask, Response, render_template, request
from flask.logging import default_handler
import copy
import logging
from logging.handlers import RotatingFileHandler
import json

import pipeline
from api_errors import ImageInspectorError

app = Flask(__name__)

# --- Default Configuration ---
DEFAULT_CONFIG = {
    "repo_config": dict(pipeline.DEFAULT_SETTINGS['repo_config']),
    "runtime_config": dict(pipeline.DEFAULT_SETTINGS['runtime_config']),
    "app_config": {
        "host": "0.0.0.0",
        "port": 8080,
        "debug": False,
        "log_file": "helm_image.log",
        "log_max_bytes": 10485760,  # 10MB
        "log_backup_count": 3,
        "log_level_app": "INFO",
        "log_level_file_handler": "INFO"
    }
}

CONFIG_FILE_PATH = 'config.json'
CONFIG_SECTIONS = ['repo_config', 'runtime_config', 'app_config']

NUMERIC_SETTINGS = {
    "repo_config": {"clone_timeout": float, "retention_hours": float},
    "runtime_config": {"query_timeout": float, "pull_timeout": float, "inspect_timeout": float},
    "app_config": {"port": int, "log_max_bytes": int, "log_backup_count": int},
}


def setup_logging(config):
    """Route all logging, Flask's included, to one rotating log file."""
    app_cfg = config['app_config']
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    file_handler = RotatingFileHandler(
        app_cfg['log_file'],
        maxBytes=app_cfg['log_max_bytes'],
        backupCount=app_cfg['log_backup_count']
    )
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(name)s]: %(message)s '
        '[in %(pathname)s:%(lineno)d]'
    ))
    file_handler.setLevel(app_cfg['log_level_file_handler'])
    root_logger.addHandler(file_handler)
    root_logger.setLevel(app_cfg['log_level_app'])

    # app.logger propagates to the root handler; Flask's own stderr handler would duplicate it
    app.logger.removeHandler(default_handler)
    app.logger.setLevel(app_cfg['log_level_app'])

    logging.getLogger(__name__).info(f"Rotating log handler configured. Logging to: {app_cfg['log_file']}")


def _coerce_settings(config, defaults):
    """Converts numeric settings given as strings, falling back to defaults."""
    for section, keys in NUMERIC_SETTINGS.items():
        for key, number_type in keys.items():
            value = config[section][key]
            try:
                if isinstance(value, bool):
                    raise ValueError(value)
                config[section][key] = number_type(value)
            except (TypeError, ValueError):
                app.logger.warning(
                    f"Config value for '{section}.{key}' ('{value}') is not a valid number. "
                    f"Using default: {defaults[section][key]}"
                )
                config[section][key] = defaults[section][key]

    if not isinstance(config['app_config']['debug'], bool):
        app.logger.warning(
            f"Config value for 'app_config.debug' ('{config['app_config']['debug']}') is not a valid boolean. "
            f"Using default: {defaults['app_config']['debug']}"
        )
        config['app_config']['debug'] = defaults['app_config']['debug']
    return config


def load_config(defaults, filepath):
    """Load configuration from file with defaults.

    Args:
        defaults (dict): The default configuration, one dict per section.
        filepath (str): The path to the JSON configuration file.

    Returns:
        dict: The defaults with every section updated from the file.
    """
    config = copy.deepcopy(defaults)
    try:
        with open(filepath, 'r') as f:
            file_config = json.load(f)
        # Deep merge for nested configuration
        for section in CONFIG_SECTIONS:
            if isinstance(file_config.get(section), dict):
                config[section].update(file_config[section])
        _coerce_settings(config, defaults)
        app.logger.info(f"Configuration loaded from {filepath}")
    except FileNotFoundError:
        app.logger.warning(f"Config file not found: {filepath}. Using defaults.")
    except (OSError, ValueError, AttributeError) as e:
        app.logger.warning(f"Error loading config from {filepath}: {e}. Using defaults.")
    return config


def _settings():
    return app.config.get('APP_SETTINGS', DEFAULT_CONFIG)


def _plain_text(message, status):
    return Response(message, status=status, mimetype='text/plain')


@app.route('/', methods=['GET'])
@app.route('/home', methods=['GET'])
def home():
    """Render the repository URL form."""
    return render_template('index.html')


@app.route('/imagedetails', methods=['GET', 'POST'])
def image_details():
    """
    Resolve the image of a chart repository and render its size and layer count.

    Not-found class errors answer 404, every other failure 500, as plain text.
    """
    logger = logging.getLogger(__name__)
    repo_url = (request.values.get('repo_url') or '').strip()
    if not repo_url:
        return _plain_text("repo_url is required", 400)

    try:
        image_info = pipeline.run(repo_url, _settings())
    except ImageInspectorError as e:
        logger.error(f"Image details for {repo_url} failed: {e}")
        return _plain_text(str(e), e.status_code)
    except OSError as e:
        logger.error(f"I/O error while resolving image for {repo_url}: {e}")
        return _plain_text(str(e), 500)

    return render_template('image_details.html', image=image_info, repo_url=repo_url)


def main():
    # Load configuration
    app.config['APP_SETTINGS'] = load_config(DEFAULT_CONFIG, CONFIG_FILE_PATH)

    # Setup unified logging
    setup_logging(app.config['APP_SETTINGS'])

    app_cfg = app.config['APP_SETTINGS']['app_config']
    logger = logging.getLogger(__name__)
    logger.info(
        f"Starting Helm Image service on {app_cfg['host']}:{app_cfg['port']} "
        f"with debug={app_cfg['debug']}"
    )

    # Each request runs its own clone, resolution and inspection
    app.run(
        host=app_cfg['host'],
        port=app_cfg['port'],
        debug=app_cfg['debug'],
        threaded=True
    )


if __name__ == '__main__':
    main()
