from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.base import Base


class Category(Base):
    __tablename__ = "Categories"

    CategoryID = Column(Integer, primary_key=True)
    CategoryName = Column(String(100), nullable=False)
    Description = Column(String(500))
    CreatedDate = Column(DateTime, server_default=func.now())

    Equipment = relationship("Equipment", back_populates="Category")


class Bin(Base):
    __tablename__ = "Bins"

    BinID = Column(Integer, primary_key=True)
    BinCode = Column(String(40), nullable=False, unique=True)
    Zone = Column(String(50))
    Description = Column(String(200))
    CreatedDate = Column(DateTime, server_default=func.now())

    Equipment = relationship("Equipment", back_populates="Bin")


class Location(Base):
    __tablename__ = "Locations"

    LocationID = Column(Integer, primary_key=True)
    LocationName = Column(String(200), nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())


class Sector(Base):
    __tablename__ = "Sectors"

    SectorID = Column(Integer, primary_key=True)
    SectorName = Column(String(200), nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())


class Equipment(Base):
    __tablename__ = "Equipment"
    __table_args__ = (
        CheckConstraint("AvailableQuantity >= 0", name="ck_equipment_available_non_negative"),
        CheckConstraint("InitialQuantity >= 0", name="ck_equipment_initial_non_negative"),
    )

    EquipmentID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    SerialNumber = Column(String(255), unique=True)
    CategoryID = Column(Integer, ForeignKey("Categories.CategoryID"))
    BinID = Column(Integer, ForeignKey("Bins.BinID"))
    Description = Column(String(1000))
    ImageUrl = Column(String(1000))
    InitialQuantity = Column(Integer, nullable=False, default=0)
    AvailableQuantity = Column(Integer, nullable=False, default=0)
    CreatedBy = Column(String(255))
    UpdatedBy = Column(String(255))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Category = relationship("Category", back_populates="Equipment")
    Bin = relationship("Bin", back_populates="Equipment")
    Movements = relationship("Tracking", back_populates="Equipment")


class Tracking(Base):
    __tablename__ = "Tracking"
    __table_args__ = (
        CheckConstraint("Quantity > 0", name="ck_tracking_quantity_positive"),
    )

    TrackingID = Column(Integer, primary_key=True)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID"), nullable=False, index=True)
    Status = Column(String(20), nullable=False)
    Quantity = Column(Integer, nullable=False)
    LocationID = Column(Integer, ForeignKey("Locations.LocationID"))
    SectorID = Column(Integer, ForeignKey("Sectors.SectorID"))
    ResponsiblePerson = Column(String(255))
    DeliveredBy = Column(String(255))
    ReceivedBy = Column(String(255))
    Notes = Column(String(2000))
    ClosedByID = Column(Integer, ForeignKey("Tracking.TrackingID", ondelete="SET NULL"))
    CreatedBy = Column(String(255))
    UpdatedBy = Column(String(255))
    CreatedAt = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    UpdatedAt = Column(DateTime)

    Equipment = relationship("Equipment", back_populates="Movements")
    Location = relationship("Location")
    Sector = relationship("Sector")


class NotificationQueue(Base):
    __tablename__ = "NotificationQueue"

    NotificationID = Column(Integer, primary_key=True)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID", ondelete="SET NULL"))
    NotificationType = Column(String(50), nullable=False)
    Payload = Column(String(2000))
    CreatedAt = Column(DateTime, server_default=func.now())
    ReadAt = Column(DateTime)


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(String(255))
    CreatedAt = Column(DateTime, server_default=func.now())


class UserRole(Base):
    __tablename__ = "UserRoles"

    UserID = Column(String(255), primary_key=True)
    Email = Column(String(255))
    Role = Column(String(30), nullable=False)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now())
