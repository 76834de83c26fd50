# Copyright Red Hat
#
# tests/__init__.py - File Sifter test package
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    roots = []
    columns = None
    sort = None
    key = None
    md5 = False
    sha1 = False
    sha256 = False
    sha512 = False
    prefilter = None
    base_match = None
    exclude = None
    regular_only = False
    follow_links = False
    xdev = False
    postfilter = None
    membership = None
    diff = False
    no_detect = False
    output = None
    verify = False
    summary_only = False
    plain = False
    plain0 = False
    group_nums = False
    ignore_nulls = False
    json_out = False
    out_zone = None
    verbose = 0
    quiet = 0
    debug = None
