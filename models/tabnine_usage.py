from sqlalchemy import Table, Column, String, Date, BigInteger, Text
from sqlalchemy.dialects.postgresql import ARRAY
from models.base import Base

# Owned by DX; declared here only so inserts can be built against it.
# No primary key on our side: conflicts are resolved by the table's own
# unique constraints with ON CONFLICT DO NOTHING.
tabnine_daily_usages = Table(
    "tabnine_daily_usages",
    Base.metadata,
    Column("date", Date, nullable=True),
    Column("email", String(320), nullable=True),
    Column("user_identifier", String(255), nullable=True),
    Column("user_name", String(255), nullable=True),
    Column("current_team", String(255), nullable=True),
    Column("user_role", String(100), nullable=True),
    Column("languages", ARRAY(Text), nullable=True),
    Column("ides", ARRAY(Text), nullable=True),
    Column("number_of_devices", BigInteger, nullable=True),
    Column("num_of_keystrokes", BigInteger, nullable=True),
    Column("number_of_completions", BigInteger, nullable=True),
    Column("num_of_characters_added", BigInteger, nullable=True),
    Column("num_of_lines_completed", BigInteger, nullable=True),
    Column("chat_interactions", BigInteger, nullable=True),
    Column("chat_consumption", BigInteger, nullable=True),
    Column("copy_code_consumption", BigInteger, nullable=True),
    Column("chat_consumed_characters", BigInteger, nullable=True),
    Column("chat_consumed_lines", BigInteger, nullable=True),
    Column("copy_clicks", BigInteger, nullable=True),
    Column("insert_clicks", BigInteger, nullable=True),
    Column("click_thumbs", BigInteger, nullable=True),
    Column("copied_text", BigInteger, nullable=True),
    Column("click_navs", BigInteger, nullable=True),
    schema="custom",
)

TABNINE_COLUMNS = [column.name for column in tabnine_daily_usages.columns]
