from PySide6.QtCore import QObject


class BaseModule(QObject):
    """
    Controllers are QObjects so screens can connect to their signals.
    refresh() re-reads whatever the controller's table model shows.
    """

    def refresh(self) -> None:
        raise NotImplementedError
