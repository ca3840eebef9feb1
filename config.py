import os
from decimal import Decimal
from dotenv import load_dotenv

# Загрузка .env
load_dotenv()

# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///mlm.db")

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Корень дерева: сюда привязываются пользователи без валидного реферального кода
ADMIN_ANCHOR_EMAIL = os.getenv("ADMIN_ANCHOR_EMAIL")

# Реферальная сеть
MAX_UPLINE_LEVELS = int(os.getenv("MAX_UPLINE_LEVELS", "5"))
REFERRAL_CODE_LENGTH = int(os.getenv("REFERRAL_CODE_LENGTH", "6"))

# Ставки по уровням (1.5%, 1%, 0.5%, 0.5%, 0.5%), редактируются админом через RateService
DEFAULT_LEVEL_RATES = [
    Decimal(x.strip())
    for x in os.getenv("MLM_LEVEL_RATES", "0.015,0.01,0.005,0.005,0.005").split(",")
]

# Self commission не входит в основной поток доставки
SELF_COMMISSION_ON_DELIVERY = os.getenv("SELF_COMMISSION_ON_DELIVERY", "false").lower() == "true"

# Очередь начислений (outbox)
COMMISSION_TASK_BATCH = int(os.getenv("COMMISSION_TASK_BATCH", "20"))
COMMISSION_TASK_MAX_ATTEMPTS = int(os.getenv("COMMISSION_TASK_MAX_ATTEMPTS", "3"))
# Задача в статусе processing дольше этого срока считается брошенной и берётся повторно
COMMISSION_TASK_LEASE_SECONDS = int(os.getenv("COMMISSION_TASK_LEASE_SECONDS", "300"))
