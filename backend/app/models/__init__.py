from .user import User
from .habit import Habit, HabitLog
from .reminder import ReminderLog
from .conversation import Conversation
