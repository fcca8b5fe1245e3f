"""Flask web application for SkillSwap."""

import json
import logging
import os
from functools import wraps

from flask import Flask, Response, g, jsonify, request

from config import DATA_DIR, LOG_LEVEL, SECRET_KEY, STORE_BACKEND
from skillswap.models import MatchStatus, SKILL_CATALOG
from skillswap.services import (
    ConversationManager,
    ConversationNotFoundError,
    ConversationServiceError,
    DocumentStore,
    HeaderIdentityProvider,
    IdentityProvider,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    MatchService,
    MessageFeedError,
    ParticipantError,
    ProfileService,
    ProfileServiceError,
)

logger = logging.getLogger(__name__)

# Seconds between keep-alive comments on an idle message stream
STREAM_HEARTBEAT_SECONDS = 15

MATCH_STATUS_CODES = {
    MatchStatus.OK: 200,
    MatchStatus.INCOMPLETE_PROFILE: 200,
    MatchStatus.PROFILE_NOT_FOUND: 404,
    MatchStatus.LOAD_FAILED: 503,
}


def build_store() -> DocumentStore:
    """Create the document store selected by STORE_BACKEND."""
    if STORE_BACKEND == "memory":
        return InMemoryDocumentStore()
    return JsonFileDocumentStore(DATA_DIR / "store")


def _conversation_error(e: ConversationServiceError):
    if isinstance(e, ConversationNotFoundError):
        return jsonify({'error': str(e)}), 404
    if isinstance(e, ParticipantError):
        return jsonify({'error': str(e)}), 403
    logger.warning("[api] conversation request failed: %s", e)
    return jsonify({'error': str(e)}), 503


def _sse(payload: dict, event: str | None = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def create_app(store: DocumentStore | None = None, identity: IdentityProvider | None = None) -> Flask:
    """Build the Flask app around an injected store and identity provider."""
    app = Flask(__name__)
    app.config['SECRET_KEY'] = SECRET_KEY

    store = store if store is not None else build_store()
    identity = identity if identity is not None else HeaderIdentityProvider()

    profiles = ProfileService(store, identity)
    matches = MatchService(store, identity)
    conversations = ConversationManager(store, identity)
    app.extensions['skillswap'] = {
        'store': store,
        'profiles': profiles,
        'matches': matches,
        'conversations': conversations,
    }

    def identity_required(f):
        """Decorator to require a signed-in user for API endpoints."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = identity.current_user_id()
            if not user_id:
                return jsonify({'error': 'Authentication required'}), 401
            g.user_id = user_id
            return f(*args, **kwargs)
        return decorated_function

    @app.route('/')
    def index():
        return jsonify({'message': 'SkillSwap API running'})

    @app.route('/api/skills')
    def api_skills():
        """List the skill catalog."""
        return jsonify({'success': True, 'skills': list(SKILL_CATALOG)})

    # Profile endpoints

    @app.route('/api/profile', methods=['POST'])
    @identity_required
    def api_create_profile():
        """Create the signed-in user's profile at signup."""
        data = request.get_json(silent=True) or {}
        display_name = (data.get('displayName') or '').strip()
        if not display_name:
            return jsonify({'error': 'displayName is required'}), 400
        try:
            profile = profiles.create_profile(g.user_id, display_name, data.get('email'))
            return jsonify({'success': True, 'profile': profile.to_dict()}), 201
        except ProfileServiceError as e:
            return jsonify({'error': str(e)}), 400

    @app.route('/api/profile', methods=['GET'])
    @app.route('/api/profile/<user_id>', methods=['GET'])
    @identity_required
    def api_get_profile(user_id=None):
        """Fetch a profile (own profile by default)."""
        try:
            profile = profiles.get_profile(user_id or g.user_id)
        except ProfileServiceError as e:
            return jsonify({'error': str(e)}), 503
        if profile is None:
            return jsonify({'error': 'Profile not found'}), 404
        return jsonify({'success': True, 'profile': profile.to_dict()})

    @app.route('/api/profile', methods=['PUT'])
    @identity_required
    def api_update_profile():
        """Merge fields into the signed-in user's profile."""
        data = request.get_json(silent=True) or {}
        try:
            profile = profiles.update_profile(g.user_id, data)
            return jsonify({'success': True, 'profile': profile.to_dict()})
        except ProfileServiceError as e:
            return jsonify({'error': str(e)}), 400

    @app.route('/api/profile/skills', methods=['POST', 'DELETE'])
    @identity_required
    def api_profile_skill():
        """Add or remove one skill: {"skill": ..., "kind": "teach" | "learn"}."""
        data = request.get_json(silent=True) or {}
        skill = data.get('skill', '')
        kind = data.get('kind', '')
        try:
            if request.method == 'POST':
                profile = profiles.add_skill(g.user_id, skill, kind)
            else:
                profile = profiles.remove_skill(g.user_id, skill, kind)
            return jsonify({'success': True, 'profile': profile.to_dict()})
        except ProfileServiceError as e:
            return jsonify({'error': str(e)}), 400

    # Matching

    @app.route('/api/matches')
    @identity_required
    def api_matches():
        """Ranked reciprocal matches for the signed-in user."""
        outcome = matches.find_matches(g.user_id)
        body = outcome.to_dict()
        body['success'] = outcome.ok
        return jsonify(body), MATCH_STATUS_CODES[outcome.status]

    # Conversations

    @app.route('/api/conversations', methods=['GET'])
    @identity_required
    def api_list_conversations():
        """List the signed-in user's conversations."""
        try:
            listing = conversations.list_conversations(g.user_id, request.args.get('active') or None)
        except ConversationServiceError as e:
            return _conversation_error(e)
        return jsonify({'success': True, **listing.to_dict()})

    @app.route('/api/conversations', methods=['POST'])
    @identity_required
    def api_start_conversation():
        """Resolve or create the conversation with another user: {"user_id": ...}."""
        data = request.get_json(silent=True) or {}
        other_id = (data.get('user_id') or '').strip()
        if not other_id:
            return jsonify({'error': 'user_id is required'}), 400
        try:
            conversation_id = conversations.resolve_or_create(g.user_id, other_id)
        except ConversationServiceError as e:
            return _conversation_error(e)
        return jsonify({'success': True, 'conversation_id': conversation_id})

    @app.route('/api/conversations/<conversation_id>/messages', methods=['POST'])
    @identity_required
    def api_send_message(conversation_id):
        """Send a message as the signed-in user: {"text": ...}."""
        data = request.get_json(silent=True) or {}
        try:
            result = conversations.send(conversation_id, g.user_id, data.get('text') or '')
        except ConversationServiceError as e:
            return _conversation_error(e)
        if not result.ok:
            return jsonify({'error': result.error, **result.to_dict()}), 400
        return jsonify({'success': True, **result.to_dict()}), 201

    def _require_participant(conversation_id):
        conversation = conversations.get_conversation(conversation_id)
        if not conversation.includes(g.user_id):
            raise ParticipantError(f"{g.user_id} is not a participant of {conversation_id}")

    @app.route('/api/conversations/<conversation_id>/messages', methods=['GET'])
    @identity_required
    def api_messages(conversation_id):
        """Current ordered timeline, taken from the live feed."""
        try:
            _require_participant(conversation_id)
            with conversations.watch_messages(conversation_id) as watch:
                snapshot = watch.next_snapshot(timeout=STREAM_HEARTBEAT_SECONDS) or []
        except ConversationServiceError as e:
            return _conversation_error(e)
        return jsonify({'success': True, 'messages': [m.to_dict() for m in snapshot]})

    @app.route('/api/conversations/<conversation_id>/stream')
    @identity_required
    def api_message_stream(conversation_id):
        """Server-sent events: one full ordered snapshot per change."""
        try:
            _require_participant(conversation_id)
        except ConversationServiceError as e:
            return _conversation_error(e)

        def generate():
            # the watch opens on first read
            try:
                watch = conversations.watch_messages(conversation_id)
            except ConversationServiceError as e:
                yield _sse({'error': str(e)}, event='error')
                return
            try:
                while True:
                    try:
                        snapshot = watch.next_snapshot(timeout=STREAM_HEARTBEAT_SECONDS)
                    except StopIteration:
                        return
                    except MessageFeedError as e:
                        yield _sse({'error': str(e)}, event='error')
                        return
                    if snapshot is None:
                        yield ": keep-alive\n\n"
                        continue
                    yield _sse({'messages': [m.to_dict() for m in snapshot]})
            finally:
                watch.cancel()

        return Response(
            generate(),
            mimetype='text/event-stream',
            headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
        )

    return app


if __name__ == '__main__':
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    port = int(os.environ.get('PORT', 5000))
    create_app().run(debug=False, host='0.0.0.0', port=port, threaded=True)
