"""Mock implementations of the AWS clients for store backend testing.

These mocks match the Protocol definitions in
``ondemand.stores.backends._protocols`` so backends can be tested without
AWS access.
"""

from tests.mocks.cloud_mocks import (
    MockClock,
    MockCloudWatchClient,
    MockS3Client,
    client_error,
    create_mock_cloudwatch_client,
    create_mock_s3_client,
)

__all__ = [
    "MockClock",
    # S3
    "MockS3Client",
    "create_mock_s3_client",
    # CloudWatch
    "MockCloudWatchClient",
    "create_mock_cloudwatch_client",
    # Errors
    "client_error",
]
