import boto3
from botocore.exceptions import ClientError

from protoreg.storage.interface import ObjectStorage


class S3ObjectStorage(ObjectStorage):
    """
    Implements artifact storage using AWS S3.
    """

    def __init__(self, bucket_name: str, aws_access_key_id: str = None,
                 aws_secret_access_key: str = None, region_name: str = None,
                 client=None):
        """
        Initialize S3 storage.

        Args:
            bucket_name: Default S3 bucket for artifacts
            aws_access_key_id: AWS access key ID (if None, uses environment variables)
            aws_secret_access_key: AWS secret access key (if None, uses environment variables)
            region_name: AWS region name (if None, uses environment variables)
            client: Pre-built S3 client (tests pass a mock)
        """
        self.bucket_name = bucket_name

        # If credentials are not provided, boto3 will look for them in environment variables
        self.s3_client = client or boto3.client(
            's3',
            aws_access_key_id=aws_access_key_id or None,
            aws_secret_access_key=aws_secret_access_key or None,
            region_name=region_name or None
        )

        self._ensure_bucket_exists()

    @property
    def bucket(self) -> str:
        return self.bucket_name

    def _ensure_bucket_exists(self):
        """Ensure the S3 bucket exists, create it if it doesn't."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code in ('404', 'NoSuchBucket'):
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                raise

    def put(self, bucket: str, key: str, data: bytes) -> None:
        self.s3_client.put_object(
            Bucket=bucket,
            Key=key,
            Body=data,
            ContentType='application/gzip'
        )

    def get(self, bucket: str, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'NoSuchKey':
                raise FileNotFoundError(f"Object not found: s3://{bucket}/{key}")
            raise

    def delete(self, bucket: str, key: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=bucket, Key=key)
            return True
        except ClientError:
            return False
