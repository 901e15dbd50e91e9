"""Storage layer: external tool wrappers for each shrink stage.

Modules:
    - attach: expose an image as a block device (hdiutil, losetup)
    - filesystem: ext2/3/4 inspection, check, resize, zero-fill
    - sizing: target block count with slack
    - partition_table: partition rewrite and truncation
    - compression: gzip, pigz and xz compression
    - exceptions: error hierarchy with exit codes
"""
