# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.
