import logging
from urllib.parse import urlparse

from queue_processing.platform import QueueIdentity


def queue_name_from_url(queue_url):
    """Return the queue name, the last path segment of an SQS queue URL."""
    path = urlparse(queue_url).path.rstrip('/')
    return path.rsplit('/', 1)[-1]


def describe_queue(aws_wrapper, queue_url):
    """
    Look up the identity of an existing SQS queue.

    Args:
        aws_wrapper: AWS wrapper instance
        queue_url: SQS queue URL

    Returns:
        QueueIdentity: URL, ARN and name of the queue

    Raises:
        ClientError: If the queue does not exist or cannot be described
    """
    try:
        sqs_client = aws_wrapper.create_aws_client('sqs')

        response = sqs_client.get_queue_attributes(
            QueueUrl=queue_url,
            AttributeNames=['QueueArn']
        )
    except Exception as e:
        logging.error(f"Error describing queue {queue_url}: {e}", exc_info=True)
        raise

    queue_arn = response['Attributes']['QueueArn']
    # The ARN's last field is the queue name, the URL is a fallback
    queue_name = queue_arn.rsplit(':', 1)[-1] or queue_name_from_url(queue_url)

    return QueueIdentity(url=queue_url, arn=queue_arn, name=queue_name)
