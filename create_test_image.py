#!/usr/bin/env python3
"""
Create a simple test image with known colors for testing the color adjacency finder.
"""

import numpy as np
import cv2

# Create an RGBA test image with distinct color regions
test_image = np.zeros((300, 300, 4), dtype=np.uint8)
test_image[:, :, 3] = 255

# Add different colored regions
test_image[0:100, 0:150, :3] = [255, 0, 0]      # Red
test_image[0:100, 150:300, :3] = [0, 255, 0]    # Green
test_image[100:200, 0:300, :3] = [0, 0, 255]    # Blue
test_image[200:300, 0:150, :3] = [255, 255, 0]  # Yellow
test_image[200:300, 150:300] = [255, 255, 0, 0]  # Transparent yellow

# OpenCV expects BGRA channel order
cv2.imwrite('test_image.png', test_image[:, :, [2, 1, 0, 3]])
print("Test image 'test_image.png' created successfully!")
