from sqlalchemy import inspect
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def changed_columns(mapper, target):
    """Names of column attributes with pending changes on ``target``."""
    state = inspect(target)
    return [attr.key for attr in mapper.column_attrs if state.attrs[attr.key].history.has_changes()]
