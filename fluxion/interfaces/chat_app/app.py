import os
import secrets
import tempfile
from functools import wraps
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import psycopg2
from flask import Flask, Response, g, jsonify, request, stream_with_context
from flask_cors import CORS
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from fluxion.assistant.pipelines.agents import ChangeManagementAgent, KnowledgeAgent
from fluxion.data_manager.vectorstore.manager import VectorStoreManager
from fluxion.interfaces.chat_app.messages import convert_langchain_message, parse_client_messages
from fluxion.utils.auth import AuthError, extract_bearer_token, verify_access_token
from fluxion.utils.config_access import get_full_config
from fluxion.utils.conversation_service import DEFAULT_SESSION_ID
from fluxion.utils.env import read_secret, require_secrets
from fluxion.utils.logging import get_logger
from fluxion.utils.postgres_service_factory import PostgresServiceFactory
from fluxion.utils.project_service import ProjectForm, ProjectNotFoundError, ProjectValidationError

logger = get_logger(__name__)

CHAT_CREDENTIALS = ("SUPABASE_URL", "SUPABASE_PRIVATE_KEY", "GOOGLE_API_KEY")
SUPABASE_CREDENTIALS = ("SUPABASE_URL", "SUPABASE_PRIVATE_KEY")

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
    "Content-Type": "text/plain; charset=utf-8",
}


class CredentialsNotConfiguredError(RuntimeError):
    """Raised when a chat or ingest request needs hosted credentials that are missing."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.status = 500


class ChatWrapper:
    """
    Wrapper which holds functionality for the chat assistant: agent
    construction, conversation persistence and PDF ingestion.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        services: Optional[PostgresServiceFactory] = None,
        vector_manager: Optional[VectorStoreManager] = None,
        project_agent_builder: Optional[Callable[[], Any]] = None,
        knowledge_agent_builder: Optional[Callable[[], Any]] = None,
    ):
        self._agent_lock = Lock()

        # load configs
        self.config = config or get_full_config(resolve_embeddings=True)
        self.services_config = self.config["services"]

        self.services = services or PostgresServiceFactory.from_yaml_config(self.config)
        self.vector_manager = vector_manager or VectorStoreManager(config=self.config)

        self._project_agent_builder = project_agent_builder or self._build_project_agent
        self._knowledge_agent_builder = knowledge_agent_builder or self._build_knowledge_agent
        self._project_agent = None
        self._knowledge_agent = None

    # =========================================================================
    # Credentials and agents
    # =========================================================================

    @staticmethod
    def check_chat_credentials() -> None:
        if require_secrets(*CHAT_CREDENTIALS):
            raise CredentialsNotConfiguredError("Required credentials not configured (Supabase or Google API)")

    @staticmethod
    def check_ingest_credentials() -> None:
        if require_secrets(*SUPABASE_CREDENTIALS):
            raise CredentialsNotConfiguredError("Supabase credentials not configured")

    def _build_project_agent(self) -> ChangeManagementAgent:
        return ChangeManagementAgent(self.config, vector_manager=self.vector_manager)

    def _build_knowledge_agent(self) -> KnowledgeAgent:
        return KnowledgeAgent(self.config, vector_manager=self.vector_manager)

    @property
    def project_agent(self):
        with self._agent_lock:
            if self._project_agent is None:
                logger.info("Building project chat agent")
                self._project_agent = self._project_agent_builder()
            return self._project_agent

    @property
    def knowledge_agent(self):
        with self._agent_lock:
            if self._knowledge_agent is None:
                logger.info("Building knowledge chat agent")
                self._knowledge_agent = self._knowledge_agent_builder()
            return self._knowledge_agent

    # =========================================================================
    # Project chat
    # =========================================================================

    def _save_last_user_message(self, history, messages: Sequence[BaseMessage]) -> None:
        last_message = messages[-1] if messages else None
        if isinstance(last_message, HumanMessage):
            history.add_message(last_message)

    def stream_project_chat(self, project_id: str, session_id: str, messages: List[BaseMessage]) -> Iterator[str]:
        """
        Save the user's message, then return an iterator of answer text.

        The agent is built before this returns so setup failures surface to
        the caller; the streamed answer is stored once the stream completes.
        """
        history = self.services.conversation_service.history_for(project_id, session_id)
        self._save_last_user_message(history, messages)
        agent = self.project_agent

        def _text_stream() -> Iterator[str]:
            answer = ""
            try:
                for output in agent.stream(messages):
                    if output.final:
                        answer = output.answer
                        continue
                    delta = output.metadata.get("delta", "")
                    if delta:
                        yield delta
            except Exception as e:
                logger.error("Error while streaming project chat %s/%s: %s", project_id, session_id, e, exc_info=True)
                return

            if answer:
                logger.debug("Persisting streamed answer (%d chars) for %s/%s", len(answer), project_id, session_id)
                history.add_message(AIMessage(content=answer))

        return _text_stream()

    def invoke_project_chat(self, project_id: str, session_id: str, messages: List[BaseMessage]) -> List[Dict[str, Any]]:
        """Run the agent to completion, store every new message and return the full run."""
        history = self.services.conversation_service.history_for(project_id, session_id)
        self._save_last_user_message(history, messages)

        output = self.project_agent.invoke(messages)
        new_messages = list(output.messages[len(messages):])
        if new_messages:
            history.add_messages(new_messages)
        return [convert_langchain_message(message) for message in output.messages]

    def get_history(self, project_id: str, session_id: str) -> List[Dict[str, Any]]:
        return self.services.conversation_service.fetch_client_messages(project_id, session_id)

    def clear_history(self, project_id: str, session_id: str) -> bool:
        return self.services.conversation_service.history_for(project_id, session_id).clear()

    # =========================================================================
    # Knowledge chat (stateless)
    # =========================================================================

    def stream_knowledge_chat(self, messages: List[BaseMessage]) -> Iterator[str]:
        agent = self.knowledge_agent

        def _text_stream() -> Iterator[str]:
            try:
                for output in agent.stream(messages):
                    delta = output.metadata.get("delta", "") if not output.final else ""
                    if delta:
                        yield delta
            except Exception as e:
                logger.error("Error while streaming knowledge chat: %s", e, exc_info=True)

        return _text_stream()

    def invoke_knowledge_chat(self, messages: List[BaseMessage]) -> List[Dict[str, Any]]:
        output = self.knowledge_agent.invoke(messages)
        return [convert_langchain_message(message) for message in output.messages]

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest_pdf(self, file_path: str, source_name: Optional[str] = None) -> int:
        return self.vector_manager.ingest_pdf(file_path, source_name=source_name)


class FlaskAppWrapper(object):

    def __init__(
        self,
        app: Flask,
        *,
        config: Optional[Dict[str, Any]] = None,
        services: Optional[PostgresServiceFactory] = None,
        chat: Optional[ChatWrapper] = None,
    ):
        logger.info("Entering FlaskAppWrapper")
        self.app = app
        self.config = config or get_full_config(resolve_embeddings=True)
        self.services_config = self.config["services"]
        self.chat_app_config = self.services_config["chat_app"]

        secret_key = read_secret("FLASK_SECRET_KEY")
        if not secret_key:
            logger.warning("FLASK_SECRET_KEY not found, generating a random secret key")
            secret_key = secrets.token_hex(32)
        self.app.secret_key = secret_key
        self.app.config['MAX_CONTENT_LENGTH'] = int(self.chat_app_config.get("max_upload_mb", 20)) * 1024 * 1024

        auth_config = self.chat_app_config.get('auth', {}) or {}
        self.auth_enabled = auth_config.get('enabled', True)
        self.auth_audience = auth_config.get('audience', 'authenticated')
        self.anonymous_user_id = auth_config.get('anonymous_user_id')
        self.jwt_secret = read_secret("SUPABASE_JWT_SECRET")
        logger.info(f"Auth enabled: {self.auth_enabled}")

        self.services = services or (chat.services if chat else PostgresServiceFactory.from_yaml_config(self.config))
        self.chat = chat or ChatWrapper(self.config, services=self.services)

        # enable CORS:
        CORS(self.app)

        # public endpoints
        self.add_endpoint('/api/health', 'health', self.health, methods=["GET"])

        # projects
        self.add_endpoint('/api/projects', 'list_projects', self.require_auth(self.list_projects), methods=["GET"])
        self.add_endpoint('/api/projects', 'create_project', self.require_auth(self.create_project), methods=["POST"])
        self.add_endpoint('/api/projects/<project_id>', 'get_project', self.require_auth(self.get_project), methods=["GET"])
        self.add_endpoint('/api/projects/<project_id>', 'update_project', self.require_auth(self.update_project), methods=["PUT"])
        self.add_endpoint('/api/projects/<project_id>', 'delete_project', self.require_auth(self.delete_project), methods=["DELETE"])
        self.add_endpoint('/api/stakeholders', 'list_stakeholders', self.require_auth(self.list_stakeholders), methods=["GET"])

        # chat
        self.add_endpoint('/api/projects/<project_id>/chat', 'get_project_chat', self.require_auth(self.get_project_chat), methods=["GET"])
        self.add_endpoint('/api/projects/<project_id>/chat', 'post_project_chat', self.require_auth(self.post_project_chat), methods=["POST"])
        self.add_endpoint('/api/projects/<project_id>/chat', 'delete_project_chat', self.require_auth(self.delete_project_chat), methods=["DELETE"])
        self.add_endpoint('/api/chat/retrieval_agents', 'retrieval_agents_chat', self.require_auth(self.retrieval_agents_chat), methods=["POST"])

        # ingestion
        self.add_endpoint('/api/retrieval/ingest', 'ingest', self.require_auth(self.ingest), methods=["POST"])

    def require_auth(self, f):
        """Decorator to require a valid Supabase access token for routes"""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not self.auth_enabled:
                g.user_id = self.anonymous_user_id
                return f(*args, **kwargs)

            try:
                token = extract_bearer_token(request.headers.get("Authorization"))
                claims = verify_access_token(token, self.jwt_secret, audience=self.auth_audience)
            except AuthError as e:
                logger.warning("Rejected request to %s: %s", request.path, e.message)
                return jsonify({'error': 'Unauthorized', 'message': e.message}), e.status

            g.user_id = claims["sub"]
            return f(*args, **kwargs)
        return decorated_function

    def health(self):
        return jsonify({"status": "OK"}), 200

    def add_endpoint(self, endpoint = None, endpoint_name = None, handler = None, methods = ['GET'], *args, **kwargs):
        self.app.add_url_rule(endpoint, endpoint_name, handler, methods = methods, *args, **kwargs)

    def run(self, **kwargs):
        self.app.run(**kwargs)

    # =========================================================================
    # Projects
    # =========================================================================

    def list_projects(self):
        try:
            projects = self.services.project_service.list_projects(g.user_id)
        except Exception as e:
            logger.error(f"Error listing projects: {e}", exc_info=True)
            return jsonify({"error": "Failed to fetch projects"}), 500
        return jsonify({"projects": [project.to_dict() for project in projects]}), 200

    def create_project(self):
        try:
            form = ProjectForm.from_payload(request.get_json(silent=True))
            project = self.services.project_service.create_project(form, g.user_id)
        except ProjectValidationError as e:
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.error(f"Error creating project: {e}", exc_info=True)
            return jsonify({"error": "Failed to create project"}), 500
        return jsonify(project.to_dict()), 201

    def get_project(self, project_id):
        try:
            project = self.services.project_service.get_project(project_id, g.user_id)
        except (ProjectNotFoundError, psycopg2.DataError):
            # ids that are not UUIDs fail the cast in the query
            return jsonify({"error": "Project not found"}), 404
        except Exception as e:
            logger.error(f"Error fetching project {project_id}: {e}", exc_info=True)
            return jsonify({"error": "Failed to fetch project"}), 500
        return jsonify(project.to_dict()), 200

    def update_project(self, project_id):
        try:
            form = ProjectForm.from_payload(request.get_json(silent=True))
            project = self.services.project_service.update_project(project_id, form, g.user_id)
        except ProjectValidationError as e:
            return jsonify({"error": str(e)}), 400
        except (ProjectNotFoundError, psycopg2.DataError):
            return jsonify({"error": "Project not found"}), 404
        except Exception as e:
            logger.error(f"Error updating project {project_id}: {e}", exc_info=True)
            return jsonify({"error": "Failed to update project"}), 500
        return jsonify(project.to_dict()), 200

    def delete_project(self, project_id):
        try:
            deleted = self.services.project_service.delete_project(project_id, g.user_id)
        except psycopg2.DataError:
            deleted = False
        except Exception as e:
            logger.error(f"Error deleting project {project_id}: {e}", exc_info=True)
            return jsonify({"error": "Failed to delete project"}), 500
        if not deleted:
            return jsonify({"error": "Project not found"}), 404
        return jsonify({"success": True}), 200

    def list_stakeholders(self):
        try:
            stakeholders = self.services.project_service.list_stakeholders()
        except Exception as e:
            logger.error(f"Error listing stakeholders: {e}", exc_info=True)
            return jsonify({"error": "Failed to fetch stakeholders"}), 500
        return jsonify({"stakeholders": [s.to_dict() for s in stakeholders]}), 200

    # =========================================================================
    # Chat
    # =========================================================================

    def _parse_chat_request(self) -> Dict[str, Any]:
        body = request.get_json(silent=True) or {}
        return {
            "messages": parse_client_messages(body.get("messages") or []),
            "session_id": body.get("sessionId") or DEFAULT_SESSION_ID,
            "show_intermediate_steps": bool(body.get("show_intermediate_steps")),
        }

    def _stream_response(self, text_stream: Iterator[str]) -> Response:
        return Response(stream_with_context(text_stream), headers=STREAM_HEADERS)

    def get_project_chat(self, project_id):
        session_id = request.args.get("sessionId") or DEFAULT_SESSION_ID
        try:
            messages = self.chat.get_history(project_id, session_id)
        except Exception as e:
            logger.error(f"Error fetching chat history for {project_id}/{session_id}: {e}", exc_info=True)
            return jsonify({"error": "Failed to fetch chat history"}), 500
        return jsonify({"messages": messages}), 200

    def delete_project_chat(self, project_id):
        session_id = request.args.get("sessionId") or DEFAULT_SESSION_ID
        try:
            cleared = self.chat.clear_history(project_id, session_id)
        except Exception as e:
            logger.error(f"Error clearing chat history for {project_id}/{session_id}: {e}", exc_info=True)
            cleared = False
        if not cleared:
            return jsonify({"error": "Failed to clear chat history"}), 500
        return jsonify({"success": True}), 200

    def post_project_chat(self, project_id):
        """
        Chat with the project assistant.

        Streams plain text tokens by default; with ``show_intermediate_steps``
        returns every message of the agent run as JSON.
        """
        try:
            request_data = self._parse_chat_request()
            messages = request_data["messages"]
            session_id = request_data["session_id"]
            self.chat.check_chat_credentials()

            if not request_data["show_intermediate_steps"]:
                try:
                    text_stream = self.chat.stream_project_chat(project_id, session_id, messages)
                except Exception as e:
                    logger.error(f"Error in streaming response: {e}", exc_info=True)
                    return jsonify({"error": "Error processing your request"}), 500
                return self._stream_response(text_stream)

            try:
                result_messages = self.chat.invoke_project_chat(project_id, session_id, messages)
            except Exception as e:
                logger.error(f"Error in intermediate steps response: {e}", exc_info=True)
                return jsonify({"error": "Error processing your request with intermediate steps"}), 500
            return jsonify({"messages": result_messages}), 200

        except Exception as e:
            logger.error(f"Error in project chat: {e}", exc_info=True)
            return jsonify({"error": getattr(e, "message", str(e))}), getattr(e, "status", 500)

    def retrieval_agents_chat(self):
        try:
            request_data = self._parse_chat_request()
            messages = request_data["messages"]
            self.chat.check_chat_credentials()

            if not request_data["show_intermediate_steps"]:
                try:
                    text_stream = self.chat.stream_knowledge_chat(messages)
                except Exception as e:
                    logger.error(f"Error in streaming response: {e}", exc_info=True)
                    return jsonify({"error": "Error processing your request"}), 500
                return self._stream_response(text_stream)

            try:
                result_messages = self.chat.invoke_knowledge_chat(messages)
            except Exception as e:
                logger.error(f"Error in intermediate steps response: {e}", exc_info=True)
                return jsonify({"error": "Error processing your request with intermediate steps"}), 500
            return jsonify({"messages": result_messages}), 200

        except Exception as e:
            logger.error(f"Error in retrieval agents chat: {e}", exc_info=True)
            return jsonify({"error": getattr(e, "message", str(e))}), getattr(e, "status", 500)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest(self):
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            logger.error("No file or invalid file received")
            return jsonify({"error": "Please upload a valid PDF file."}), 400
        if upload.mimetype != "application/pdf":
            logger.error(f"Rejected upload {upload.filename} with type {upload.mimetype}")
            return jsonify({"error": "Please upload a valid PDF file."}), 400

        try:
            self.chat.check_ingest_credentials()
        except CredentialsNotConfiguredError as e:
            return jsonify({"error": e.message}), e.status

        fd, tmp_path = tempfile.mkstemp(suffix=".pdf")
        os.close(fd)
        try:
            upload.save(tmp_path)
            chunks = self.chat.ingest_pdf(tmp_path, source_name=upload.filename)
        except Exception as e:
            logger.error(f"Error processing PDF: {e}", exc_info=True)
            return jsonify({"error": str(e)}), 500
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        logger.info(f"Ingested {upload.filename}: {chunks} chunks")
        return jsonify({"success": True, "chunks": chunks}), 200


def create_app(
    config: Optional[Dict[str, Any]] = None,
    *,
    services: Optional[PostgresServiceFactory] = None,
    chat: Optional[ChatWrapper] = None,
) -> Flask:
    """Build the Flask application with all routes registered."""
    app = Flask(__name__)
    wrapper = FlaskAppWrapper(app, config=config, services=services, chat=chat)
    app.extensions["fluxion"] = wrapper
    return app
