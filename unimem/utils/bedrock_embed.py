"""
Amazon Bedrock embedding client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockEmbedConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Titan v2 is the only family here that accepts a requested output size
TITAN_V2_DIMENSIONS = (256, 512, 1024)


class BedrockEmbedError(Exception):
    """Custom exception for Bedrock embedding errors."""
    pass


class BedrockEmbed:
    """Amazon Bedrock embedding client with retry logic and error handling.

    The model is chosen per call, so one client serves whichever embedding model
    the memory configuration currently selects.
    """

    def __init__(self, config: BedrockEmbedConfig):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
        """
        self.config = config
        self.bedrock = boto3.client(service_name='bedrock-runtime', region_name=config.region)

        logger.info(f'Initialized Bedrock Embed client in region: {config.region}')

    def _call_with_retry(self, model_id: str, data: dict) -> dict:
        """
        Make a Bedrock API call with retry logic.

        Args:
            model_id: Bedrock embedding model id
            data: Request data dictionary

        Returns:
            Response dictionary from Bedrock API

        Raises:
            BedrockEmbedError: If all retry attempts fail
        """
        body = json.dumps(data)

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock Embed request attempt {attempt + 1}/{self.config.retry_attempts}')

                response = self.bedrock.invoke_model(body=body,
                                                     modelId=model_id,
                                                     accept='application/json',
                                                     contentType='application/json')

                return json.loads(response.get('body').read())

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockEmbedError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock Embed: {e}')
                raise BedrockEmbedError(f'Unexpected Bedrock Embed error: {e}')

        raise BedrockEmbedError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts')

    def embed(self, text: str, model_id: str, dimension: int, input_type: str = 'search_document') -> List[float]:
        """
        Generate an embedding for text.

        Args:
            text: Text to embed
            model_id: Bedrock embedding model id
            dimension: Expected output dimension
            input_type: 'search_document' when storing, 'search_query' when searching

        Returns:
            List of embedding values

        Raises:
            BedrockEmbedError: If embedding generation fails or the model is unsupported
        """
        if not text or not text.strip():
            raise BedrockEmbedError('Cannot embed empty text')

        model = model_id.lower()
        try:
            if 'titan' in model:
                data = {'inputText': text}
                if dimension in TITAN_V2_DIMENSIONS and 'v2' in model:
                    data['dimensions'] = dimension
                response = self._call_with_retry(model_id, data)
                embedding = response.get('embedding') or []

            elif 'cohere' in model:
                data = {'input_type': input_type, 'texts': [text]}
                response = self._call_with_retry(model_id, data)
                embeddings = response.get('embeddings') or []
                if isinstance(embeddings, dict):
                    # embed-v4 groups vectors by embedding type
                    embeddings = embeddings.get('float') or []
                embedding = embeddings[0] if embeddings else []

            else:
                raise BedrockEmbedError(f'Unsupported embedding model: {model_id}')

        except BedrockEmbedError:
            raise
        except Exception as e:
            logger.error(f'Error generating embedding: {e}')
            raise BedrockEmbedError(f'Embedding failed: {e}')

        if len(embedding) != dimension:
            raise BedrockEmbedError(f'Model {model_id} returned {len(embedding)} dimensions, index expects {dimension}')
        return embedding
