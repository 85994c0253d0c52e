SERVICE_NAME = "consumer"
