from models.audit_log import AuditLog
from models.category import Category
from models.one_time_token import EmailVerification, PasswordReset
from models.role import Permission, Role
from models.transaction import Transaction, TransactionType
from models.user import User
