from PySide6.QtCore import QAbstractTableModel, Qt, QModelIndex
from PySide6.QtGui import QColor
from ...utils.helpers import fmt_money


class DueBillsTableModel(QAbstractTableModel):
    HEADERS = ["Bill #", "Customer", "Total", "Paid", "Due", "Due Date", "Status"]

    def __init__(self, rows: list):
        super().__init__()
        self._rows = rows

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        r = self._rows[index.row()]
        c = index.column()
        if role in (Qt.DisplayRole, Qt.EditRole):
            mapping = [
                r.bill_number,
                r.customer_name or "Walk-in",
                fmt_money(r.total_amount),
                fmt_money(r.paid_amount),
                fmt_money(r.due_amount),
                r.due_date or "",
                "Overdue" if r.overdue else r.payment_status,
            ]
            return mapping[c]
        if role == Qt.TextAlignmentRole:
            return (Qt.AlignRight | Qt.AlignVCenter) if c in (2, 3, 4) else (Qt.AlignLeft | Qt.AlignVCenter)
        if role == Qt.ForegroundRole and c == 6 and r.overdue:
            return QColor("#c62828")
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return super().headerData(section, orientation, role)

    def at(self, row: int):
        return self._rows[row]

    def replace(self, rows: list):
        self.beginResetModel()
        self._rows = rows
        self.endResetModel()
