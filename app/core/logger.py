import logging
import sys

logger = logging.getLogger('main-logger')
logger.setLevel(logging.DEBUG)

handler = logging.StreamHandler(sys.stdout)
handler.setLevel(logging.DEBUG)
handler.setFormatter(
    logging.Formatter('%(asctime)s %(levelname)s [%(module)s] %(message)s')
)
logger.addHandler(handler)


def mask_phone(phone):
    # Public submissions carry raw phone numbers; keep only the last digits in logs
    if not phone:
        return phone
    visible = phone[-3:]
    return '*' * max(len(phone) - 3, 0) + visible
