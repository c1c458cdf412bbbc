LOGGER_NAME = "tokenimages"
