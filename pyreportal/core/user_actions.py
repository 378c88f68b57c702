import logging

# Operator actions get their own logger so they can be routed to an audit file
user_action_logger = logging.getLogger("pyreportal.user_actions")


def log_user_action(action: str, /, **data):
    if data:
        details = ", ".join(f"{k}={v}" for k, v in data.items())
        user_action_logger.info(f"{action} ({details})")
    else:
        user_action_logger.info(action)
