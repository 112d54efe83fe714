"""
Lambda function entry point for AWS Lambda deployments.
"""

# Configure logging first
from queue_processing.common.logger import setup_logging

setup_logging()

from queue_processing.main import lambda_handler


# The handler is specified in the Lambda configuration as "lambda_function.handler"
def handler(event, context):
    """
    AWS Lambda function handler that delegates to the main lambda_handler.

    Args:
        event: AWS Lambda event object, can carry a 'config' dict of overrides
        context: AWS Lambda context object

    Returns:
        Outputs of the created service, or a status code and error message
    """
    return lambda_handler(event, context)
