"""provisioner - 可断点续跑的主机部署编排器"""

__version__ = "0.3.0"
