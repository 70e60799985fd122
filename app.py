#!/usr/bin/env python3
"""
Word Garden - Flask JSON API
Backend for a children's literacy app: new-word lists in Chinese and English,
mini games, mastery tracking, experience, achievements and an AI tutor.
"""

import os
import sys
import logging
import argparse
from typing import Any, Dict

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from word_garden import (
    db, accounts, achievements, drills, games, mastery, progression, tutor, vocabulary,
)
from word_garden.errors import ValidationError, WordGardenError
from word_garden.phonetics import lookup_english

# Check for debug mode
DEBUG = os.environ.get("DEBUG", "0") == "1"

logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # photos sent to the tutor


@app.before_request
def initialize_app() -> None:
    """Initialize the database if needed."""
    if not hasattr(app, '_database_initialized'):
        if not db.is_db_initialized():
            db.init_db()
            app.logger.info("Database initialized on startup")
        setattr(app, "_database_initialized", True)


@app.errorhandler(WordGardenError)
def handle_app_error(e: WordGardenError) -> Any:
    if e.status_code >= 500:
        app.logger.error("%s: %s", type(e).__name__, e.message)
    return jsonify({'status': 'error', 'message': e.message}), e.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(e: Exception) -> Any:
    if isinstance(e, HTTPException):
        return jsonify({'status': 'error', 'message': e.description}), e.code
    app.logger.exception("Unhandled error on %s", request.path)
    return jsonify({'status': 'error', 'message': 'Internal server error'}), 500


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int_field(data: Dict[str, Any], name: str) -> int:
    value = data.get(name)
    if isinstance(value, bool):
        raise ValidationError(f"Missing or invalid {name}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Missing or invalid {name}")


# ----------------------------------------------------------------------
# Accounts
# ----------------------------------------------------------------------
@app.route('/api/register', methods=['POST'])
def api_register() -> Any:
    data = _json_body()
    user = accounts.register(data.get('username'), data.get('password'))
    return jsonify({'status': 'success', 'message': 'Registered', **user})


@app.route('/api/login', methods=['POST'])
def api_login() -> Any:
    data = _json_body()
    user = accounts.authenticate(data.get('username'), data.get('password'))
    return jsonify({'status': 'success', **user})


@app.route('/api/change-password', methods=['POST'])
def api_change_password() -> Any:
    data = _json_body()
    accounts.change_password(_int_field(data, 'user_id'), data.get('old_password'), data.get('new_password'))
    return jsonify({'status': 'success', 'message': 'Password changed'})


@app.route('/api/ai-key-status/<int:user_id>')
def api_ai_key_status(user_id: int) -> Any:
    return jsonify({'status': 'success', 'has_key': accounts.has_api_key(user_id)})


@app.route('/api/ai-key', methods=['POST'])
def api_save_ai_key() -> Any:
    data = _json_body()
    accounts.save_api_key(_int_field(data, 'user_id'), data.get('api_key'))
    return jsonify({'status': 'success', 'message': 'API key saved'})


# ----------------------------------------------------------------------
# Vocabulary
# ----------------------------------------------------------------------
@app.route('/api/words/<int:user_id>')
def api_list_words(user_id: int) -> Any:
    kind = request.args.get('kind', 'chinese')
    return jsonify({'status': 'success', 'words': vocabulary.list_words(user_id, kind)})


@app.route('/api/words', methods=['POST'])
def api_add_word() -> Any:
    """Add a word. English words without a phonetic are looked up first."""
    data = _json_body()
    user_id = _int_field(data, 'user_id')
    kind = data.get('kind', 'chinese')
    text = data.get('text')
    phonetic = data.get('phonetic')
    meaning = data.get('meaning')

    if kind == 'english' and isinstance(text, str) and text.strip() and not (phonetic and meaning):
        found = lookup_english(text)
        phonetic = phonetic or found['phonetic']
        meaning = meaning or found['chinese']

    result = vocabulary.add_word(user_id, kind, text, phonetic=phonetic, meaning=meaning)
    return jsonify({
        'status': 'success',
        'item': result.item,
        'previously_deleted': result.previously_deleted,
        'exp': result.exp.to_dict() if result.exp else None,
    })


@app.route('/api/delete', methods=['POST'])
def api_delete_word() -> Any:
    data = _json_body()
    result = vocabulary.delete_word(_int_field(data, 'user_id'), _int_field(data, 'item_id'))
    return jsonify({
        'status': 'success',
        'item_id': result.item_id,
        'was_mastered': result.was_mastered,
        'exp': result.exp.to_dict() if result.exp else None,
        'stars_awarded': result.stars_awarded,
        'achievements': result.achievements,
    })


@app.route('/api/speak', methods=['POST'])
def api_speak() -> Any:
    data = _json_body()
    result = vocabulary.record_practice(_int_field(data, 'user_id'), _int_field(data, 'item_id'))
    return jsonify({'status': 'success', **result})


@app.route('/api/word-stats/<kind>/<int:user_id>')
def api_word_stats(kind: str, user_id: int) -> Any:
    return jsonify({'status': 'success', **vocabulary.word_stats(user_id, kind)})


@app.route('/api/proxy/english/<word>')
def api_english_lookup(word: str) -> Any:
    return jsonify({'status': 'success', **lookup_english(word)})


# ----------------------------------------------------------------------
# Games, mastery and progression
# ----------------------------------------------------------------------
@app.route('/api/games/<game_type>/<int:user_id>')
def api_generate_game(game_type: str, user_id: int) -> Any:
    generator = games.GENERATORS.get(game_type)
    if generator is None:
        raise ValidationError(f"Unknown game type: {game_type}")
    kind = request.args.get('kind', 'chinese')
    count = request.args.get('count', games.DEFAULT_QUESTION_COUNT)
    questions = generator(user_id, kind, count)
    return jsonify({'status': 'success', 'game_type': game_type, 'questions': questions})


@app.route('/api/games/<game_type>/submit', methods=['POST'])
def api_submit_game(game_type: str) -> Any:
    data = _json_body()
    duration = data.get('duration_seconds')
    if duration is not None:
        try:
            duration = float(duration)
        except (TypeError, ValueError):
            raise ValidationError("duration_seconds must be a number")
    submitter = games.SUBMITTERS.get(game_type)
    if submitter is None:
        raise ValidationError(f"Unknown game type: {game_type}")
    result = submitter(_int_field(data, 'user_id'), data.get('answers'), duration)
    return jsonify({'status': 'success', **result})


@app.route('/api/mastery/answer', methods=['POST'])
def api_mastery_answer() -> Any:
    data = _json_body()
    is_correct = data.get('is_correct')
    if not isinstance(is_correct, bool):
        raise ValidationError("is_correct must be true or false")
    result = mastery.record_answer(_int_field(data, 'user_id'), _int_field(data, 'item_id'), is_correct)
    return jsonify({'status': 'success', **result.to_dict()})


@app.route('/api/game-stats/<int:user_id>')
def api_game_stats(user_id: int) -> Any:
    return jsonify({'status': 'success', 'stats': progression.get_stats(user_id)})


@app.route('/api/achievements/<int:user_id>')
def api_achievements(user_id: int) -> Any:
    return jsonify({'status': 'success', 'achievements': achievements.list_achievements(user_id)})


# ----------------------------------------------------------------------
# Pinyin and English drills
# ----------------------------------------------------------------------
@app.route('/api/pinyin-list')
def api_pinyin_chart() -> Any:
    return jsonify({'status': 'success', **drills.pinyin_chart()})


@app.route('/api/pinyin/<int:user_id>')
def api_pinyin_records(user_id: int) -> Any:
    return jsonify({'status': 'success', 'records': drills.list_pinyin(user_id)})


@app.route('/api/pinyin-init', methods=['POST'])
def api_pinyin_init() -> Any:
    data = _json_body()
    created = drills.init_pinyin(_int_field(data, 'user_id'))
    return jsonify({'status': 'success', 'created': created})


@app.route('/api/pinyin-learn', methods=['POST'])
def api_pinyin_learn() -> Any:
    data = _json_body()
    record = drills.learn_pinyin(_int_field(data, 'user_id'), data.get('pinyin'), data.get('type'))
    return jsonify({'status': 'success', 'record': record})


@app.route('/api/english-learn', methods=['POST'])
def api_english_learn() -> Any:
    data = _json_body()
    record = drills.record_english_learn(_int_field(data, 'user_id'), data.get('word'), data.get('level'))
    return jsonify({'status': 'success', 'record': record})


@app.route('/api/english-learn/<int:user_id>')
def api_english_learn_records(user_id: int) -> Any:
    return jsonify({'status': 'success', 'records': drills.list_english_learn(user_id)})


# ----------------------------------------------------------------------
# AI tutor
# ----------------------------------------------------------------------
@app.route('/api/ai-tutor', methods=['POST'])
def api_ai_tutor() -> Any:
    data = _json_body()
    reply = tutor.ask_tutor(
        _int_field(data, 'user_id'),
        prompt=data.get('prompt'),
        image=data.get('image'),
        model=data.get('model'),
    )
    return jsonify({'status': 'success', 'response': reply})


@app.route('/api/ai-chat-history/<int:user_id>')
def api_chat_history(user_id: int) -> Any:
    return jsonify({'status': 'success', 'messages': tutor.list_history(user_id)})


@app.route('/api/ai-chat-history/<int:user_id>', methods=['DELETE'])
def api_delete_chat_history(user_id: int) -> Any:
    message_id = request.args.get('id', type=int)
    deleted = tutor.delete_history(user_id, message_id)
    return jsonify({'status': 'success', 'deleted': deleted})


def get_local_ip() -> str:
    """Attempt to determine the local network IP address."""
    import socket
    try:
        # Connect to an external server (doesn't actually send data)
        # to determine the interface used for internet access
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        local_ip = s.getsockname()[0]
        s.close()
        return local_ip
    except OSError:
        return "127.0.0.1"


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Word Garden API server')
    parser.add_argument('--host', help='Host IP to bind to (default: auto-detect local IP)')
    parser.add_argument('--port', type=int, default=3000, help='Port to bind to (default: 3000)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if args.debug:
        DEBUG = True
        logging.getLogger().setLevel(logging.DEBUG)

    if not db.is_db_initialized():
        db.init_db()
        app.logger.info("Database initialized at %s", db.DB_PATH)

    host = args.host or get_local_ip()
    app.logger.info("Starting server on http://%s:%s", host, args.port)
    app.run(debug=DEBUG, host=host, port=args.port)
