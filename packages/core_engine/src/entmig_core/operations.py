from dataclasses import dataclass

CREATE_EXTENSION = "create_extension"
DROP_EXTENSION = "drop_extension"
CREATE_TABLE = "create_table"
DROP_TABLE = "drop_table"
ADD_COLUMN = "add_column"
DROP_COLUMN = "drop_column"
ALTER_COLUMN = "alter_column"
ADD_INDEX = "add_index"
DROP_INDEX = "drop_index"
ADD_FOREIGN_KEY = "add_foreign_key"
DROP_FOREIGN_KEY = "drop_foreign_key"
CREATE_HYPERTABLE = "create_hypertable"
DROP_HYPERTABLE = "drop_hypertable"

OPERATION_KINDS = (
    CREATE_EXTENSION,
    DROP_EXTENSION,
    CREATE_TABLE,
    DROP_TABLE,
    ADD_COLUMN,
    DROP_COLUMN,
    ALTER_COLUMN,
    ADD_INDEX,
    DROP_INDEX,
    ADD_FOREIGN_KEY,
    DROP_FOREIGN_KEY,
    CREATE_HYPERTABLE,
    DROP_HYPERTABLE,
)


@dataclass(frozen=True)
class Operation:
    kind: str
    target: str
    sql: str

    def as_dict(self):
        return {"kind": self.kind, "target": self.target, "sql": self.sql}
