from PySide6.QtCore import QAbstractTableModel, Qt, QModelIndex
from ...utils.helpers import fmt_money
from .cart import CartBuilder


class CartItemsModel(QAbstractTableModel):
    HEADERS = ["#", "Product", "Qty", "Unit Price", "Line Total"]

    def __init__(self, cart: CartBuilder):
        super().__init__()
        self._cart = cart
        self._rows = cart.lines()
        cart.linesChanged.connect(self._reload)

    def _reload(self):
        self.beginResetModel()
        self._rows = self._cart.lines()
        self.endResetModel()

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        ln = self._rows[index.row()]
        if role == Qt.DisplayRole:
            mapping = [
                index.row() + 1,
                ln.product_name,
                ln.quantity,
                fmt_money(ln.unit_price),
                fmt_money(ln.line_total),
            ]
            return mapping[index.column()]
        if role == Qt.TextAlignmentRole and index.column() >= 2:
            return Qt.AlignRight | Qt.AlignVCenter
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return super().headerData(section, orientation, role)

    def at(self, row: int):
        return self._rows[row]


class BillsTableModel(QAbstractTableModel):
    HEADERS = ["Bill #", "Date", "Customer", "Total", "Status"]

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
        if role in (Qt.DisplayRole, Qt.EditRole):
            mapping = [
                r["bill_number"],
                (r["created_at"] or "")[:10],
                r["customer_name"] or "Walk-in",
                fmt_money(r["total_amount"]),
                r["status"],
            ]
            return mapping[index.column()]
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
