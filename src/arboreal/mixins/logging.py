from ngs_tools.logging import Logger

logger = Logger(__name__)
