"""Object store and queue clients backed by aioboto3 (S3 and SQS)."""

from typing import Any, Dict, List, TYPE_CHECKING

from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_sqs.client import SQSClient
else:
    S3Client = Any
    SQSClient = Any

from .error_handling import EnsureOnce, client_error_code, with_service_errors
from .logging_config import get_logger
from .models import LeasedMessage, PeekedMessage

OBJECT_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound", "NoSuchBucket")
QUEUE_NOT_FOUND_CODES = ("AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist")

# SQS refuses MaxNumberOfMessages above 10
SQS_MAX_BATCH = 10


class S3ObjectStore:
    """Object store over an aioboto3 S3 client; containers are buckets."""

    def __init__(self, s3_client: S3Client):
        self._client = s3_client
        self._containers = EnsureOnce()
        self._logger = get_logger("images-queue.object-store")

    async def _create_bucket(self, bucket: str) -> None:
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        region = getattr(self._client.meta, "region_name", None)
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            await self._client.create_bucket(**kwargs)
            self._logger.info(f"Created container: {bucket}")
        except ClientError as e:
            if client_error_code(e) != "BucketAlreadyOwnedByYou":
                raise
            self._logger.debug(f"Container already exists: {bucket}")

    @with_service_errors
    async def ensure_container(self, container: str) -> None:
        await self._containers.ensure(container, lambda: self._create_bucket(container))

    @with_service_errors
    async def put(self, container: str, name: str, data: bytes, content_type: str) -> None:
        await self.ensure_container(container)
        self._logger.debug(f"Uploading s3://{container}/{name} ({len(data)} bytes)")
        await self._client.put_object(
            Bucket=container, Key=name, Body=data, ContentType=content_type
        )

    @with_service_errors
    async def get(self, container: str, name: str) -> bytes:
        self._logger.debug(f"Downloading s3://{container}/{name}")
        response = await self._client.get_object(Bucket=container, Key=name)
        async with response["Body"] as stream:
            return await stream.read()

    @with_service_errors
    async def exists(self, container: str, name: str) -> bool:
        try:
            await self._client.head_object(Bucket=container, Key=name)
        except ClientError as e:
            if client_error_code(e) in OBJECT_NOT_FOUND_CODES:
                return False
            raise
        return True

    @with_service_errors
    async def delete(self, container: str, name: str) -> None:
        self._logger.debug(f"Deleting s3://{container}/{name}")
        await self._client.delete_object(Bucket=container, Key=name)


class SQSQueueService:
    """Durable queue over an aioboto3 SQS client.

    SQS has no peek operation; ``peek_visible`` receives with a zero visibility
    timeout, so the messages stay receivable for any other reader.
    """

    def __init__(self, sqs_client: SQSClient, lease_seconds: int = 60):
        self._client = sqs_client
        self._lease_seconds = lease_seconds
        self._queues = EnsureOnce()
        self._urls: Dict[str, str] = {}
        self._logger = get_logger("images-queue.queue")

    async def _create_queue(self, name: str) -> str:
        response = await self._client.create_queue(QueueName=name)
        self._logger.info(f"Queue ensured to exist: {name}")
        return response["QueueUrl"]

    async def _queue_url(self, name: str) -> str:
        if self._queues.is_ensured(name):
            return self._queues.cached(name)
        if name not in self._urls:
            response = await self._client.get_queue_url(QueueName=name)
            self._urls[name] = response["QueueUrl"]
        return self._urls[name]

    @staticmethod
    def _delivery_count(message: Dict[str, Any]) -> int:
        attributes = message.get("Attributes") or {}
        return int(attributes.get("ApproximateReceiveCount", 1))

    async def _receive(self, name: str, max_count: int, visibility: int) -> List[Dict[str, Any]]:
        response = await self._client.receive_message(
            QueueUrl=await self._queue_url(name),
            MaxNumberOfMessages=max(1, min(max_count, SQS_MAX_BATCH)),
            VisibilityTimeout=visibility,
            WaitTimeSeconds=0,
            AttributeNames=["ApproximateReceiveCount"],
        )
        return response.get("Messages", [])

    @with_service_errors
    async def ensure_queue(self, name: str) -> None:
        await self._queues.ensure(name, lambda: self._create_queue(name))

    @with_service_errors
    async def send(self, name: str, body: str) -> None:
        await self.ensure_queue(name)
        response = await self._client.send_message(
            QueueUrl=self._queues.cached(name), MessageBody=body
        )
        self._logger.debug(f"Sent message {response.get('MessageId')} to {name}")

    @with_service_errors
    async def receive_leased(self, name: str, max_count: int) -> List[LeasedMessage]:
        messages = await self._receive(name, max_count, self._lease_seconds)
        return [
            LeasedMessage(
                message_id=message["MessageId"],
                body=message["Body"],
                lease_handle=message["ReceiptHandle"],
                delivery_count=self._delivery_count(message),
            )
            for message in messages
        ]

    @with_service_errors
    async def peek_visible(self, name: str, max_count: int) -> List[PeekedMessage]:
        try:
            messages = await self._receive(name, max_count, 0)
        except ClientError as e:
            if client_error_code(e) in QUEUE_NOT_FOUND_CODES:
                self._logger.info(f"Queue does not exist yet: {name}")
                return []
            raise
        return [
            PeekedMessage(
                message_id=message["MessageId"],
                body=message["Body"],
                delivery_count=self._delivery_count(message),
            )
            for message in messages
        ]

    @with_service_errors
    async def delete_leased(self, name: str, lease_handle: str) -> None:
        await self._client.delete_message(
            QueueUrl=await self._queue_url(name), ReceiptHandle=lease_handle
        )
