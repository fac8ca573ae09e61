"""
OpenSearch client wrapper for memory-store indexes and k-NN search.
"""

import hashlib
import re
from typing import Any, Dict, List, Optional

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import NotFoundError, OpenSearchException, RequestError
from requests_aws4auth import AWS4Auth

from .config import OpenSearchConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Top-level keyword fields a search filter may target; everything else lives in the
# unindexed `metadata` object.
FILTERABLE_FIELDS = ('user_id', 'memory_type')


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


class OpenSearchConflictError(OpenSearchError):
    """Raised when an index being created already exists."""
    pass


class OpenSearchNotFoundError(OpenSearchError):
    """Raised when a requested document does not exist."""
    pass


def similarity_from_score(score: float) -> float:
    """Convert an nmslib `cosinesimil` k-NN score (1 + cos) back to cosine similarity."""
    return max(-1.0, min(1.0, score - 1.0))


class OpenSearchClient:
    """OpenSearch client with AWS authentication and error handling."""

    def __init__(self, config: OpenSearchConfig):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
        """
        self.config = config

        # Get AWS credentials and create auth
        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
        endpoint = config.endpoint
        if '://' in endpoint:
            # Remove protocol if present
            endpoint = endpoint.split('://', 1)[1]

        self.client = OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                                 http_auth=auth,
                                 use_ssl=True,
                                 verify_certs=True,
                                 connection_class=RequestsHttpConnection)

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def index_id_for(self, store_name: str) -> str:
        """Derive the deterministic OpenSearch index name backing a logical store.

        OpenSearch index names must be lowercase; the hash suffix keeps names that only
        differ in case or punctuation apart.
        """
        slug = re.sub(r'[^a-z0-9_-]+', '-', store_name.lower()).strip('-_') or 'store'
        digest = hashlib.sha1(store_name.encode('utf-8')).hexdigest()[:8]
        return f'{self.config.index_prefix}{slug}-{digest}'

    def list_indexes(self) -> List[Dict[str, Any]]:
        """
        List the memory-store indexes under the configured prefix.

        Returns:
            List of dicts with id, name, dimension and metadata keys
        """
        try:
            response = self.client.indices.get(index=f'{self.config.index_prefix}*')
        except NotFoundError:
            return []
        except OpenSearchException as e:
            logger.error(f'Error listing indexes: {e}')
            raise OpenSearchError(f'Failed to list indexes: {e}')
        except Exception as e:
            logger.error(f'Unexpected error listing indexes: {e}')
            raise OpenSearchError(f'Unexpected error listing indexes: {e}')

        indexes = []
        for index_id, body in response.items():
            meta = body.get('mappings', {}).get('_meta', {})
            indexes.append({
                'id': index_id,
                'name': meta.get('store_name', index_id),
                'dimension': meta.get('dimension'),
                'metadata': meta.get('metadata', {})
            })
        logger.debug(f'Listed {len(indexes)} memory indexes')
        return indexes

    def create_index(self, index_id: str, store_name: str, dimension: int, meta: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a k-NN index for a memory store.

        Args:
            index_id: OpenSearch index name
            store_name: Logical memory-store name recorded in the mapping
            dimension: Embedding dimension
            meta: Additional index-level metadata stored in the mapping's _meta

        Returns:
            Dict with id, name, dimension and metadata keys

        Raises:
            OpenSearchConflictError: If the index already exists
            OpenSearchError: On any other failure
        """
        index_body = {
            'mappings': {
                '_meta': {
                    'store_name': store_name,
                    'dimension': dimension,
                    **meta
                },
                'properties': {
                    'id': {
                        'type': 'keyword'
                    },
                    'user_id': {
                        'type': 'keyword'
                    },
                    'memory_type': {
                        'type': 'keyword'
                    },
                    'text': {
                        'type': 'text'
                    },
                    'metadata': {
                        'type': 'object',
                        'enabled': False
                    },
                    'embedding': {
                        'type': 'knn_vector',
                        'dimension': dimension,
                        'method': {
                            'name': 'hnsw',
                            'space_type': 'cosinesimil',
                            'engine': 'nmslib'
                        }
                    }
                }
            },
            'settings': {
                'index': {
                    'knn': True,
                    'knn.algo_param.ef_search': 100
                }
            }
        }

        try:
            self.client.indices.create(index=index_id, body=index_body)
            logger.info(f'Created index {index_id} for memory store {store_name}')
            return {'id': index_id, 'name': store_name, 'dimension': dimension, 'metadata': meta.get('metadata', {})}
        except RequestError as e:
            if e.error == 'resource_already_exists_exception':
                logger.info(f'Index {index_id} already exists')
                raise OpenSearchConflictError(f'Index {index_id} already exists')
            logger.error(f'Error creating index {index_id}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except OpenSearchException as e:
            logger.error(f'Error creating index {index_id}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {index_id}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def find_document(self, index_name: str, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Locate a document by its memory id.

        Serverless vector collections assign their own document ids, so records are
        addressed through the `id` keyword field rather than `_id`.

        Returns:
            Dict with `_id` and `document` keys, or None if not found
        """
        search_body = {'size': 1, 'query': {'term': {'id': record_id}}, '_source': {'excludes': ['embedding']}}
        try:
            response = self.client.search(index=index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error getting document {record_id}: {e}')
            raise OpenSearchError(f'Failed to get document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error getting document {record_id}: {e}')
            raise OpenSearchError(f'Unexpected error getting document: {e}')

        hits = response['hits']['hits']
        if not hits:
            return None
        return {'_id': hits[0]['_id'], 'document': hits[0]['_source']}

    def index_document(self, index_name: str, document: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """
        Index a document, replacing the document with `doc_id` when given.

        Returns:
            The OpenSearch document id
        """
        try:
            if doc_id:
                response = self.client.index(index=index_name, id=doc_id, body=document)
            else:
                response = self.client.index(index=index_name, body=document)
        except OpenSearchException as e:
            logger.error(f'Error indexing document: {e}')
            raise OpenSearchError(f'Failed to index document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing document: {e}')
            raise OpenSearchError(f'Unexpected error indexing document: {e}')

        if response.get('result') not in ['created', 'updated']:
            logger.warning(f'Unexpected result indexing document: {response}')
        logger.debug(f'Indexed document in {index_name}')
        return response.get('_id', doc_id or '')

    def update_document(self, index_name: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Partially update a document's top-level fields."""
        try:
            self.client.update(index=index_name, id=doc_id, body={'doc': fields})
            logger.debug(f'Updated document {doc_id} in {index_name}')
        except NotFoundError:
            raise OpenSearchNotFoundError(f'Document {doc_id} not found in {index_name}')
        except OpenSearchException as e:
            logger.error(f'Error updating document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to update document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error updating document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error updating document: {e}')

    def vector_search(self,
                      index_name: str,
                      query_vector: List[float],
                      top_k: int = 20,
                      filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Perform k-NN similarity search with optional keyword filters.

        Args:
            index_name: Name of the index
            query_vector: Query vector for similarity search
            top_k: Number of results to return
            filters: Mapping of FILTERABLE_FIELDS to required values

        Returns:
            List of dicts with id, score (cosine similarity) and document keys
        """
        filter_clauses = []
        for key, value in (filters or {}).items():
            if key not in FILTERABLE_FIELDS:
                raise OpenSearchError(f'Unsupported filter field: {key}')
            filter_clauses.append({'term': {key: value}})

        search_body = {
            'size': top_k,
            'query': {
                'bool': {
                    'must': [{
                        'knn': {
                            'embedding': {
                                'vector': query_vector,
                                'k': top_k
                            }
                        }
                    }],
                    'filter': filter_clauses
                }
            },
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }

        try:
            response = self.client.search(index=index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error performing vector search: {e}')
            raise OpenSearchError(f'Vector search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in vector search: {e}')
            raise OpenSearchError(f'Unexpected error in vector search: {e}')

        results = []
        for hit in response['hits']['hits']:
            source = hit['_source']
            results.append({
                'id': source.get('id', hit['_id']),
                'score': similarity_from_score(hit['_score']),
                'document': source
            })

        logger.debug(f'Vector search returned {len(results)} results from {index_name}')
        return results

    def delete_document(self, index_name: str, doc_id: str) -> bool:
        """
        Delete a document from the index.

        Returns:
            True if deletion was successful, False if the document did not exist
        """
        try:
            response = self.client.delete(index=index_name, id=doc_id)
        except NotFoundError:
            logger.warning(f'Document {doc_id} not found for deletion')
            return False
        except OpenSearchException as e:
            logger.error(f'Error deleting document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to delete document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error deleting document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error deleting document: {e}')

        success = response.get('result') == 'deleted'
        if success:
            logger.debug(f'Deleted document {doc_id} from {index_name}')
        else:
            logger.warning(f'Document {doc_id} not found for deletion')
        return success
