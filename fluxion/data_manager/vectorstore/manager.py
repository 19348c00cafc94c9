from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from langchain_community.document_loaders import PyPDFLoader
from langchain_community.vectorstores import SupabaseVectorStore
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter
from supabase import Client, create_client

from fluxion.utils.config_service import ConfigService
from fluxion.utils.env import read_secret
from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

# rows are sent to Supabase in batches of this size
UPSERT_BATCH_SIZE = 500


class MissingCredentialsError(RuntimeError):
    """Raised when a hosted service is used without its credentials."""


def create_supabase_client() -> Client:
    url = read_secret("SUPABASE_URL")
    key = read_secret("SUPABASE_PRIVATE_KEY")
    if not url or not key:
        raise MissingCredentialsError("Supabase credentials not configured")
    return create_client(url, key)


class VectorStoreManager:
    """
    Encapsulates vector store configuration, retrieval and PDF ingestion.

    Uses the Supabase ``documents`` table with the ``match_documents`` RPC
    for similarity search. The Supabase client and the embedding model are
    built on first use so the web app can start without credentials.
    """

    def __init__(
        self,
        *,
        config: Dict[str, Any],
        client: Optional[Client] = None,
        embedding_model: Optional[Any] = None,
    ) -> None:
        self.config = config
        self._data_manager_config = config["data_manager"]

        self.embedding_name = self._data_manager_config["embedding_name"]
        self.table_name = self._data_manager_config.get("table_name", "documents")
        self.query_name = self._data_manager_config.get("query_name", "match_documents")
        self.num_documents_to_retrieve = self._data_manager_config.get("num_documents_to_retrieve", 5)

        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self._data_manager_config["chunk_size"],
            chunk_overlap=self._data_manager_config["chunk_overlap"],
        )

        self._client = client
        self._embedding_model = embedding_model

        logger.info(f"VectorStoreManager initialized: table={self.table_name}, embedding={self.embedding_name}")

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_supabase_client()
        return self._client

    @property
    def embedding_model(self):
        if self._embedding_model is None:
            self._embedding_model = self._build_embedding_model()
        return self._embedding_model

    def _build_embedding_model(self):
        embedding_class_map = ConfigService._resolve_embedding_classes(
            self._data_manager_config["embedding_class_map"]
        )
        embedding_entry = embedding_class_map[self.embedding_name]
        embedding_class = embedding_entry["class"]
        if isinstance(embedding_class, str):
            raise ValueError(f"Unknown embedding class '{embedding_class}' for '{self.embedding_name}'")
        embedding_kwargs = dict(embedding_entry.get("kwargs", {}) or {})

        # hosted inference endpoint needs the HuggingFace token
        if embedding_class.__name__ == "HuggingFaceEndpointEmbeddings":
            token = read_secret("HUGGINGFACEHUB_API_KEY")
            if token:
                embedding_kwargs.setdefault("huggingfacehub_api_token", token)

        logger.debug("Building embedding model %s(%s)", embedding_class.__name__, embedding_kwargs.get("model") or embedding_kwargs.get("model_name"))
        return embedding_class(**embedding_kwargs)

    def fetch_collection(self) -> SupabaseVectorStore:
        """Return a SupabaseVectorStore bound to the documents table."""
        return SupabaseVectorStore(
            client=self.client,
            embedding=self.embedding_model,
            table_name=self.table_name,
            query_name=self.query_name,
        )

    def as_retriever(self, k: Optional[int] = None):
        """Retriever over the documents table; k defaults to num_documents_to_retrieve."""
        return self.fetch_collection().as_retriever(search_kwargs={"k": k or self.num_documents_to_retrieve})

    def loader(self, file_path: str | Path) -> PyPDFLoader:
        return PyPDFLoader(str(file_path))

    def split_documents(self, documents: List[Document]) -> List[Document]:
        return self.text_splitter.split_documents(documents)

    def add_documents(self, documents: List[Document]) -> int:
        """Split, embed and store documents. Returns the number of chunks stored."""
        chunks = self.split_documents(documents)
        if not chunks:
            logger.warning("No text chunks produced; nothing stored")
            return 0
        SupabaseVectorStore.from_documents(
            chunks,
            self.embedding_model,
            client=self.client,
            table_name=self.table_name,
            query_name=self.query_name,
            chunk_size=UPSERT_BATCH_SIZE,
        )
        logger.info(f"Stored {len(chunks)} chunks in {self.table_name}")
        return len(chunks)

    def ingest_pdf(self, file_path: str | Path, *, source_name: Optional[str] = None) -> int:
        """Load a PDF from disk and store its chunks."""
        pages = self.loader(file_path).load()
        logger.info(f"Loaded {len(pages)} page(s) from {source_name or file_path}")
        if source_name:
            for page in pages:
                page.metadata["source"] = source_name
        return self.add_documents(pages)
