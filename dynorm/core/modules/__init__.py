"""
Module manifests, dependency resolution and installation.

WHY THIS PACKAGE EXISTS:
Modules are authored independently and declare models plus schema impacts on
each other's models. This package validates those manifests, orders them by
dependency and installs them against a storage provider one transaction per
module. Import ModuleManager from dynorm.core.modules.manager.
"""
