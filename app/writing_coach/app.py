"""
IELTS Writing Coach - Flask Application
JSON API for hybrid Writing Task 2 structure and band-score analysis.
"""
import logging
import os
import time
from typing import Optional
from uuid import uuid4

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from .config import config
from .services.essay_analyzer import EssayAnalyzer
from .services.gemini_client import get_gemini_client
from .services.question_bank import get_random_question
from .services.usage import UsageTracker

writing_bp = Blueprint('writing', __name__)


def create_app(config_name: Optional[str] = None) -> Flask:
    """Build the Flask app for ``config_name`` (defaults to FLASK_ENV)."""
    app = Flask(__name__)
    app.config.from_object(config[config_name or os.getenv('FLASK_ENV', 'development')])

    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    CORS(app, resources={r"/*": {"origins": app.config['CORS_ALLOWED_ORIGINS']}})

    # Process-wide AI usage accounting, shared by every request's client
    app.extensions['usage_tracker'] = UsageTracker()

    app.register_blueprint(writing_bp)
    return app


def _usage_tracker() -> UsageTracker:
    return current_app.extensions['usage_tracker']


# ============================================================================
# WRITING ANALYSIS
# ============================================================================

@writing_bp.route('/api/writing/analyze', methods=['POST'])
def analyze_writing():
    """Analyze an IELTS Writing Task 2 essay and return structure plus band scores."""
    data = request.get_json(silent=True) or {}
    essay = data.get('essay')
    prompt = data.get('prompt')

    if not isinstance(essay, str) or not essay.strip():
        return jsonify({'success': False, 'error': 'Essay text is required'}), 400
    if prompt is not None and not isinstance(prompt, str):
        return jsonify({'success': False, 'error': 'Prompt must be a string'}), 400
    max_chars = current_app.config.get('ESSAY_MAX_CHARS', 50000)
    if len(essay) > max_chars:
        return jsonify({'success': False, 'error': f'Essay exceeds the maximum length of {max_chars} characters'}), 400

    word_count = len(essay.split())
    current_app.logger.info(f"Analysis request: word_count={word_count}, chars={len(essay)}")

    started = time.monotonic()
    try:
        analysis = EssayAnalyzer(usage=_usage_tracker()).analyze(essay, prompt)
    except Exception as e:
        analysis_time_ms = int((time.monotonic() - started) * 1000)
        current_app.logger.error(f"Analysis failed after {analysis_time_ms}ms: {e}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'Analysis failed. Please try again.',
            'meta': {'analysis_time_ms': analysis_time_ms, 'word_count': word_count},
        }), 500

    analysis_time_ms = int((time.monotonic() - started) * 1000)
    current_app.logger.info(
        "Analysis completed: overall_band=%s, word_count=%s, analysis_time=%sms",
        analysis.get('overall_band'), word_count, analysis_time_ms,
    )

    return jsonify({
        'success': True,
        'submission_id': f"temp-{uuid4().hex[:12]}",
        'analysis': analysis,
        'meta': {
            'analysis_time_ms': analysis_time_ms,
            'word_count': word_count,
        },
    })


@writing_bp.route('/api/writing/questions/random')
def random_writing_question():
    """Return a random sample Task 2 question, optionally filtered by ?topic=."""
    topic = request.args.get('topic')
    question = get_random_question(topic)
    if question is None:
        return jsonify({'success': False, 'error': f'No questions found for topic {topic!r}'}), 404
    return jsonify({'success': True, 'question': question})


# ============================================================================
# HEALTH CHECK
# ============================================================================

@writing_bp.route('/api/ai/health')
def ai_health():
    """AI service status plus accumulated usage counters."""
    client = get_gemini_client()
    payload = {
        'service': 'gemini',
        'model': client.model,
        'configured': client.is_configured,
    }
    payload.update(_usage_tracker().snapshot())
    return jsonify(payload)


@writing_bp.route('/healthz')
def healthcheck():
    """Health check endpoint."""
    return jsonify({'status': 'ok'})


app = create_app()


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)), debug=app.config.get('DEBUG', False))
