SERVICE_NAME = "sqs_worker"
