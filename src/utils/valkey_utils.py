from typing import Any, Callable, Dict, Iterator, List, Optional, Set
import os

import redis
from redis.cluster import RedisCluster

import numpy as np
from redis.commands.search.field import VectorField, TagField
from redis.commands.search.index_definition import IndexDefinition, IndexType
from redis.commands.search.query import Query
from google.auth.transport.requests import Request

from .gcp_utils import GCPCore
from .common_utils import get_logger


logger = get_logger(__name__)


class ValkeyService:
    """Basic Valkey (Redis-compatible) service class for GCP Memorystore with TLS support"""

    def __init__(
        self,
        core: Optional[GCPCore] = None,
        host: str = None,
        port: int = 6379,
        instance_id: Optional[str] = None,
        socket_connect_timeout: int = 10,
        socket_timeout: int = 10,
        decode_responses: bool = True,
        ssl_enabled: bool = False,  # Disable TLS by default for now
        cluster_enabled: bool = False,  # Enable cluster mode
        authkey: Optional[str] = None,  # Add authkey parameter for Redis proxy
        **kwargs,
    ):
        """
        Initialize Valkey service with connection parameters

        Args:
            core: Initialized GCPCore instance for token authentication (optional)
            host: Valkey instance host/IP address
            port: Valkey instance port (default: 6379)
            instance_id: Optional instance ID for logging/identification
            socket_connect_timeout: Connection timeout in seconds
            socket_timeout: Socket timeout in seconds
            decode_responses: Whether to decode responses to strings
            ssl_enabled: Whether to use TLS/SSL encryption
            cluster_enabled: Whether to use cluster mode
            authkey: Optional authentication key for Redis proxy
            **kwargs: Additional redis client parameters
        """
        self.core = core

        # Check environment variables for configuration
        self.host = (
            host or os.environ.get("REDIS_HOST") or os.environ.get("PROXY_REDIS_HOST")
        )
        self.port = port or int(
            os.environ.get("REDIS_PORT", os.environ.get("PROXY_REDIS_PORT", 6379))
        )
        self.instance_id = (
            instance_id
            or os.environ.get("REDIS_INSTANCE_ID")
            or f"{self.host}:{self.port}"
        )

        # Get cluster mode from env if not provided
        if cluster_enabled is None:
            cluster_enabled_env = os.environ.get(
                "REDIS_CLUSTER_ENABLED", "false"
            ).lower()
            self.cluster_enabled = cluster_enabled_env == "true"
        else:
            self.cluster_enabled = cluster_enabled

        self.authkey = authkey or os.environ.get("REDIS_AUTHKEY")
        self.use_proxy = self.authkey is not None

        self.client = None
        self.ssl_enabled = ssl_enabled
        self.decode_responses = decode_responses
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout
        self.extra_params = kwargs

        logger.info(
            f"Initialized ValkeyService with host={self.host}, port={self.port}, "
            f"use_proxy={self.use_proxy}, cluster_enabled={self.cluster_enabled}, ssl_enabled={self.ssl_enabled}"
        )

    def _get_access_token(self) -> str:
        """
        Get fresh GCP access token for Valkey authentication

        Returns:
            GCP access token string
        """
        try:
            # Refresh credentials to get a fresh token
            self.core.credentials.refresh(Request())
            return self.core.credentials.token
        except Exception as e:
            logger.error(f"Failed to get access token for {self.instance_id}: {e}")
            raise

    def _get_password(self) -> Optional[str]:
        """Authkey wins over GCP token; no password for local instances."""
        if self.use_proxy:
            logger.debug(f"Using authkey-based connection for {self.instance_id}")
            return self.authkey
        if self.core is not None:
            logger.debug(f"Using GCP token-based connection for {self.instance_id}")
            return self._get_access_token()
        logger.debug(f"Using unauthenticated connection for {self.instance_id}")
        return None

    def connect(self) -> redis.Redis:
        """
        Create and return a connected Valkey client

        Returns:
            Connected Redis client instance
        """
        try:
            conn_params = {
                "host": self.host,
                "port": self.port,
                "password": self._get_password(),
                "socket_timeout": self.socket_timeout,
                "socket_connect_timeout": self.socket_connect_timeout,
                "decode_responses": self.decode_responses,
                **self.extra_params,
            }

            if self.ssl_enabled:
                conn_params.update(
                    {
                        "ssl": True,
                        "ssl_cert_reqs": None,
                        "ssl_check_hostname": False,
                    }
                )

            if self.cluster_enabled:
                conn_params["skip_full_coverage_check"] = True
                self.client = RedisCluster(**conn_params)
                logger.debug(f"Using RedisCluster client for {self.instance_id}")
            else:
                self.client = redis.Redis(**conn_params)
                logger.debug(f"Using Redis client for {self.instance_id}")

            # Test connection
            self.client.ping()
            ssl_status = "with TLS" if self.ssl_enabled else "without TLS"
            cluster_status = (
                "in cluster mode" if self.cluster_enabled else "in standalone mode"
            )
            logger.debug(
                f"Successfully connected to Valkey instance {self.instance_id} {ssl_status} {cluster_status}"
            )
            return self.client

        except Exception as e:
            logger.error(f"Failed to connect to Valkey {self.instance_id}: {e}")
            raise

    def get_client(self) -> redis.Redis:
        """
        Get the current client, connecting if necessary

        Returns:
            Redis client instance
        """
        if self.client is None:
            return self.connect()

        try:
            # Test if current connection is still valid
            self.client.ping()
            return self.client
        except redis.RedisError:
            # Reconnect if connection is stale
            logger.debug(
                f"Reconnecting to Valkey {self.instance_id} due to stale connection"
            )
            return self.connect()

    def verify_connection(self) -> bool:
        """
        Verify connection to Valkey instance

        Returns:
            True if connection successful, False otherwise
        """
        try:
            if self.client is None:
                self.connect()
            self.client.ping()
            return True
        except Exception as e:
            logger.error(
                f"Valkey connection verification failed for {self.instance_id}: {e}"
            )
            return False

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        """Set a key-value pair"""
        try:
            client = self.get_client()
            if ex:
                return client.setex(key, ex, value)
            else:
                return client.set(key, value)
        except Exception as e:
            logger.error(f"Failed to set key {key} in {self.instance_id}: {e}")
            raise

    def set_if_absent(self, key: str, value: Any) -> bool:
        """
        Atomically set a key only if it does not exist yet (SET NX).

        Returns:
            True if this call created the key, False if another writer got there first
        """
        try:
            client = self.get_client()
            return bool(client.set(key, value, nx=True))
        except Exception as e:
            logger.error(f"Failed to set-if-absent key {key} in {self.instance_id}: {e}")
            raise

    def get(self, key: str) -> Any:
        """Get a value by key"""
        try:
            client = self.get_client()
            return client.get(key)
        except Exception as e:
            logger.error(f"Failed to get key {key} from {self.instance_id}: {e}")
            raise

    def exists(self, key: str) -> bool:
        """Check if a key exists"""
        try:
            client = self.get_client()
            return bool(client.exists(key))
        except Exception as e:
            logger.error(
                f"Failed to check existence of key {key} in {self.instance_id}: {e}"
            )
            raise

    def hset(self, key: str, field: str, value: Any) -> int:
        """Set a single hash field (insert or overwrite)"""
        try:
            client = self.get_client()
            return client.hset(key, field, value)
        except Exception as e:
            logger.error(f"Failed to hset {key}.{field} in {self.instance_id}: {e}")
            raise

    def hget(self, key: str, field: str) -> Any:
        """Get a single hash field"""
        try:
            client = self.get_client()
            return client.hget(key, field)
        except Exception as e:
            logger.error(f"Failed to hget {key}.{field} from {self.instance_id}: {e}")
            raise

    def hgetall(self, key: str) -> Dict[str, Any]:
        """Get every field of a hash"""
        try:
            client = self.get_client()
            return client.hgetall(key)
        except Exception as e:
            logger.error(f"Failed to hgetall {key} from {self.instance_id}: {e}")
            raise

    def hlen(self, key: str) -> int:
        """Number of fields in a hash"""
        try:
            client = self.get_client()
            return client.hlen(key)
        except Exception as e:
            logger.error(f"Failed to hlen {key} from {self.instance_id}: {e}")
            raise

    def smembers(self, key: str) -> Set[str]:
        """Get all members of a set"""
        try:
            client = self.get_client()
            return client.smembers(key)
        except Exception as e:
            logger.error(f"Failed to get members of set {key} from {self.instance_id}: {e}")
            raise

    def scan_keys(self, pattern: str = "*", count: int = 5000) -> Iterator[str]:
        """Iterate keys matching a pattern without blocking the server (SCAN)"""
        try:
            client = self.get_client()
            yield from client.scan_iter(match=pattern, count=count)
        except Exception as e:
            logger.error(
                f"Failed to scan keys with pattern {pattern} from {self.instance_id}: {e}"
            )
            raise

    def pipeline(self, transaction: bool = True):
        """Get a pipeline object for batch operations"""
        try:
            client = self.get_client()
            return client.pipeline(transaction=transaction)
        except Exception as e:
            logger.error(f"Failed to create pipeline for {self.instance_id}: {e}")
            raise

    def transaction(self, func: Callable, *watches: str) -> Any:
        """
        Run func(pipe) under WATCH on the given keys, retrying on concurrent writes.

        The callable must call pipe.multi() before queueing writes.
        """
        try:
            client = self.get_client()
            return client.transaction(func, *watches, value_from_callable=True)
        except Exception as e:
            logger.error(f"Transaction on {watches} failed for {self.instance_id}: {e}")
            raise


class ValkeyVectorService(ValkeyService):
    """Service for storing and retrieving user embeddings in Valkey"""

    def __init__(
        self,
        core: Optional[GCPCore] = None,
        host: str = None,
        port: int = 6379,
        instance_id: Optional[str] = None,
        socket_timeout: int = 10,
        socket_connect_timeout: int = 10,
        ssl_enabled: bool = False,
        cluster_enabled: bool = False,
        authkey: Optional[str] = None,
        vector_dim: int = None,  # Make vector dimensions configurable
        prefix: str = "dna_v2:",  # Default prefix for keys
        index_name: str = "composite_embeddings",
        **kwargs,
    ):
        """
        Initialize Valkey Vector service with connection parameters

        Args:
            core: Initialized GCPCore instance for authentication
            host: Valkey instance host/IP address
            port: Valkey instance port (default: 6379)
            instance_id: Optional instance ID for logging/identification
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
            ssl_enabled: Whether to use TLS/SSL encryption
            cluster_enabled: Whether to use cluster mode
            authkey: Optional authentication key for Redis proxy
            vector_dim: Dimension of vector embeddings
            prefix: Key prefix for vector data
            index_name: Name of the KNN index covering the prefix
            **kwargs: Additional redis client parameters
        """
        super().__init__(
            core=core,
            host=host,
            port=port,
            instance_id=instance_id,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            ssl_enabled=ssl_enabled,
            cluster_enabled=cluster_enabled,
            authkey=authkey,
            decode_responses=False,  # Important: Don't decode binary responses for vector operations
            **kwargs,
        )

        self.vector_dim = vector_dim
        self.prefix = prefix
        self.index_name = index_name

    def get_embedding(self, user_id: str) -> Optional[np.ndarray]:
        """
        Fetch the stored embedding for a single user.

        Returns:
            float32 numpy array, or None if the user has no embedding under this prefix
        """
        client = self.get_client()
        embedding_binary = client.hget(f"{self.prefix}{user_id}", "embedding")
        if not embedding_binary:
            return None
        return np.frombuffer(embedding_binary, dtype=np.float32)

    def create_vector_index(
        self,
        vector_dim: int = None,
        id_field: str = "user_id",
    ) -> bool:
        """
        Create a Redis vector similarity index over this service's prefix

        Args:
            vector_dim: Vector dimensions (overrides class setting if provided)
            id_field: Name of the ID field in the hash (default: "user_id")
        """
        dim = vector_dim if vector_dim is not None else self.vector_dim
        if dim is None:
            logger.error(
                "Vector dimension not specified. Please provide vector_dim parameter."
            )
            return False

        try:
            schema = (
                TagField(id_field),
                VectorField(
                    "embedding",
                    "HNSW",
                    {
                        "TYPE": "FLOAT32",
                        "DIM": dim,
                        "DISTANCE_METRIC": "COSINE",
                        "INITIAL_CAP": 1000,
                        "M": 40,
                        "EF_CONSTRUCTION": 250,
                        "EF_RUNTIME": 20,
                    },
                ),
            )

            self.get_client().ft(self.index_name).create_index(
                schema,
                definition=IndexDefinition(
                    prefix=[self.prefix], index_type=IndexType.HASH
                ),
            )
            logger.debug(
                f"Created vector index: {self.index_name} with dimension {dim} and prefix {self.prefix}"
            )
            return True
        except Exception as e:
            logger.error(f"Error creating vector index {self.index_name}: {e}")
            return False

    def find_similar_users(
        self,
        query_vector,
        threshold: float,
        top_k: int,
        exclude_id: Optional[str] = None,
        id_field: str = "user_id",
    ) -> List[Dict[str, Any]]:
        """
        Find users whose embeddings are similar to the query vector.

        Runs a KNN query for top_k (+1 to make room for the excluded id), converts
        cosine distance to similarity and keeps results at or above threshold.

        Returns:
            List of {"id", "similarity"} dicts ordered by descending similarity
        """
        query_vector = np.asarray(query_vector, dtype=np.float32)
        knn = top_k + 1 if exclude_id else top_k
        query_string = f"*=>[KNN {knn} @embedding $query_vector AS vector_score]"

        query = (
            Query(query_string)
            .sort_by("vector_score")
            .return_fields(id_field, "vector_score")
            .paging(0, knn)
            .dialect(2)
        )

        logger.debug(f"Executing vector search on {self.index_name} with top_k={top_k}")
        results = (
            self.get_client()
            .ft(self.index_name)
            .search(query, {"query_vector": query_vector.tobytes()})
        )

        processed_results = []
        for doc in results.docs:
            item_id = getattr(doc, id_field)
            if isinstance(item_id, bytes):
                item_id = item_id.decode("utf-8")
            if exclude_id is not None and item_id == exclude_id:
                continue

            vector_score = getattr(doc, "vector_score", None)
            similarity_score = (
                1 - float(vector_score) if vector_score is not None else 0.0
            )
            if similarity_score < threshold:
                continue

            processed_results.append({"id": item_id, "similarity": similarity_score})

        return processed_results[:top_k]
