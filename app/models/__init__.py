from app.db.base_class import Base
from app.models.customer import Customer
from app.models.connection import Connection
from app.models.deployment import Deployment
from app.models.variant import Variant
from app.models.deployment_secret import DeploymentSecret
