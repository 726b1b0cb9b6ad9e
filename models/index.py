# Import every model module so its table is registered on Base.metadata
# (used by init_models() and by alembic autogenerate).
from config.database import Base

from api.subjects.subjects_model import Subject
from api.attendance.attendance_records_model import AttendanceRecord
from api.notifications.notifications_model import Notification

models = {
    model.__tablename__: model
    for model in (Subject, AttendanceRecord, Notification)
}

metadata = Base.metadata
