from PySide6.QtWidgets import QWidget
from PySide6.QtGui import QImage, QPainter, QColor, QPen
from PySide6.QtCore import Qt, Slot, QSize, QRect

from datamatrix_scanner.config import ROI_SIZE


class PreviewWidget(QWidget):
    """
    Displays the latest camera frame scaled to fit the widget, with the
    decode region outlined.
    """

    def __init__(self, preferred_size=None, roi_size=ROI_SIZE, parent=None):
        super().__init__(parent)
        self.image = None
        self.roi_size = roi_size
        self.preferred_size = QSize(*preferred_size) if preferred_size else QSize(640, 480)

    def sizeHint(self):
        return self.preferred_size

    @Slot(QImage)
    def set_image(self, image: QImage):
        self.image = image
        self.update()

    def target_rect(self):
        """Where the image lands inside the widget, keeping aspect ratio."""
        widget_rect = self.rect()
        img_size = self.image.size()

        scale_w = widget_rect.width() / img_size.width()
        scale_h = widget_rect.height() / img_size.height()
        scale = min(scale_w, scale_h)

        drawn_w = int(img_size.width() * scale)
        drawn_h = int(img_size.height() * scale)

        x = (widget_rect.width() - drawn_w) // 2
        y = (widget_rect.height() - drawn_h) // 2
        return QRect(x, y, drawn_w, drawn_h), scale

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor("black"))

        if not self.image or self.image.isNull() or self.image.width() == 0 or self.image.height() == 0:
            painter.end()
            return

        painter.setRenderHint(QPainter.SmoothPixmapTransform)
        target, scale = self.target_rect()
        painter.drawImage(target, self.image)

        if self.image.width() >= self.roi_size and self.image.height() >= self.roi_size:
            side = int(self.roi_size * scale)
            roi = QRect(
                target.x() + (target.width() - side) // 2,
                target.y() + (target.height() - side) // 2,
                side,
                side,
            )
            painter.setPen(QPen(QColor(0, 255, 0), 2, Qt.DashLine))
            painter.drawRect(roi)
        painter.end()
