from adapters.outbound.vector.embedder import SentenceTransformerEmbedder, get_embedder
from adapters.outbound.vector.qdrant_index import QdrantTableIndex, table_point_id

__all__ = ["SentenceTransformerEmbedder", "get_embedder", "QdrantTableIndex", "table_point_id"]
